"""
Match service.

Lineups are stored as position -> [player_id] JSON and returned hydrated with
PlayerDetail records through lineup_service (one player query per call).
"""

import logging
import re
from datetime import date
from typing import Dict, Iterable, List, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from club_backend.database.models import Match, MatchStatus, Player, Team
from club_backend.database.operators import AddToSet, Pull, apply_operation, json_array_contains
from club_backend.models.schemas import LineupAssignment
from club_backend.services.cascade import MATCH_PLAYER_REFERENCE_FIELDS
from club_backend.services.exceptions import MatchNotFoundError, TeamNotFoundError
from club_backend.services.lineup_service import (
    collect_player_ids,
    empty_lineup,
    hydrate_lineup,
    normalize_lineup,
    populate_lineup,
    populate_many_lineups,
)
from club_backend.utils.constants import LINEUP_POSITIONS
from club_backend.utils.datetime_utils import utc_today

logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")
MATCH_UPDATABLE_FIELDS = {
    "date",
    "time",
    "location",
    "away_team_name",
    "home_team_id",
    "cancellation_reason",
}
VALID_STATUSES = {status.value for status in MatchStatus}


def match_to_dict(match: Match, lineup: Optional[Dict] = None) -> Dict:
    """
    Serialize a match.

    Args:
        match: Match row
        lineup: Hydrated lineup; the empty lineup when omitted
    """
    if lineup is None:
        lineup = hydrate_lineup({}, {})
    return {
        "id": match.id,
        "date": match.date.isoformat() if match.date else None,
        "time": match.time,
        "location": match.location,
        "status": match.status,
        "home_team_id": match.home_team_id,
        "away_team_name": match.away_team_name,
        "home_score": match.home_score,
        "away_score": match.away_score,
        "cancellation_reason": match.cancellation_reason,
        "lineup": {
            position: [player.model_dump() for player in players]
            for position, players in lineup.items()
        },
        "unavailable_players": list(match.unavailable_players or []),
        "created_by_id": match.created_by_id,
        "created_at": match.created_at.isoformat() if match.created_at else None,
        "updated_at": match.updated_at.isoformat() if match.updated_at else None,
    }


def _validate_time(time: str) -> None:
    if not TIME_PATTERN.match(time or ""):
        raise ValueError("Invalid time format (HH:MM)")


async def _get_match_or_raise(session: AsyncSession, match_id: str) -> Match:
    result = await session.execute(select(Match).where(Match.id == match_id))
    match = result.scalar_one_or_none()
    if match is None:
        raise MatchNotFoundError("Match not found")
    return match


async def _require_team(session: AsyncSession, team_id: str) -> None:
    result = await session.execute(select(Team.id).where(Team.id == team_id))
    if result.scalar_one_or_none() is None:
        raise TeamNotFoundError("Team not found")


async def _players_off_team(session: AsyncSession, match: Match, team_id: str) -> List[str]:
    """Ids in the match's lineup or unavailable list that are not on team_id."""
    referenced = collect_player_ids([normalize_lineup(match.lineup)])
    for player_id in match.unavailable_players or []:
        if player_id not in referenced:
            referenced.append(player_id)
    if not referenced:
        return []

    result = await session.execute(
        select(Player.id).where(
            Player.id.in_(referenced), json_array_contains(Player.team_ids, team_id)
        )
    )
    on_team = set(result.scalars().all())
    return [player_id for player_id in referenced if player_id not in on_team]


async def _hydrated(session: AsyncSession, match: Match) -> Dict:
    return match_to_dict(match, await populate_lineup(session, match.lineup))


async def _hydrated_many(session: AsyncSession, matches: List[Match]) -> List[Dict]:
    lineups = await populate_many_lineups(session, matches)
    return [match_to_dict(match, lineup) for match, lineup in zip(matches, lineups)]


async def create_match(
    session: AsyncSession,
    home_team_id: str,
    away_team_name: str,
    match_date: date,
    time: str,
    location: str,
    created_by_id: Optional[str] = None,
) -> Dict:
    """
    Schedule a match with an empty lineup over every position.

    Raises:
        TeamNotFoundError: If the home team doesn't exist
        ValueError: If time is not HH:MM
    """
    _validate_time(time)
    await _require_team(session, home_team_id)

    match = Match(
        date=match_date,
        time=time,
        location=location,
        status=MatchStatus.SCHEDULED.value,
        home_team_id=home_team_id,
        away_team_name=away_team_name,
        lineup=empty_lineup(),
        unavailable_players=[],
        created_by_id=created_by_id,
    )
    session.add(match)
    await session.commit()
    logger.info("Created match %s for team %s on %s", match.id, home_team_id, match_date)
    return match_to_dict(match)


async def get_match(session: AsyncSession, match_id: str) -> Optional[Dict]:
    """Get a match with its hydrated lineup, or None."""
    result = await session.execute(select(Match).where(Match.id == match_id))
    match = result.scalar_one_or_none()
    if match is None:
        return None
    return await _hydrated(session, match)


async def update_match(session: AsyncSession, match_id: str, updates: Dict) -> Dict:
    """
    Update scheduling attributes of a match. Lineup, score and status have their own calls.

    Moving the match to another home team drops every lineup slot and
    unavailable entry held by a player who is not on the new team.

    Raises:
        MatchNotFoundError: If the match doesn't exist
        TeamNotFoundError: If the new home team doesn't exist
        ValueError: If time is not HH:MM
    """
    match = await _get_match_or_raise(session, match_id)
    if "time" in updates:
        _validate_time(updates["time"])

    new_team_id = updates.get("home_team_id")
    if new_team_id is not None and new_team_id != match.home_team_id:
        await _require_team(session, new_team_id)
        stale = await _players_off_team(session, match, new_team_id)
        if stale:
            # Same transaction as the team change
            Pull(MATCH_PLAYER_REFERENCE_FIELDS, tuple(stale)).apply(match)
            logger.info(
                "Moved match %s to team %s, dropped players %s", match_id, new_team_id, stale
            )

    for key, value in updates.items():
        if key in MATCH_UPDATABLE_FIELDS:
            setattr(match, key, value)
    await session.commit()
    return await _hydrated(session, match)


async def list_matches(
    session: AsyncSession,
    team_id: Optional[str] = None,
    status: Optional[str] = None,
) -> List[Dict]:
    """All matches, newest first, optionally filtered by home team and status."""
    stmt = select(Match)
    if team_id:
        stmt = stmt.where(Match.home_team_id == team_id)
    if status:
        stmt = stmt.where(Match.status == status)
    result = await session.execute(stmt.order_by(Match.date.desc(), Match.time.desc()))
    return await _hydrated_many(session, list(result.scalars().all()))


async def get_upcoming_matches(session: AsyncSession) -> List[Dict]:
    """Scheduled or in-progress matches from today on, soonest first."""
    result = await session.execute(
        select(Match)
        .where(
            Match.date >= utc_today(),
            Match.status.in_([MatchStatus.SCHEDULED.value, MatchStatus.IN_PROGRESS.value]),
        )
        .order_by(Match.date, Match.time)
    )
    return await _hydrated_many(session, list(result.scalars().all()))


async def update_lineup(
    session: AsyncSession,
    match_id: str,
    assignments: Iterable[Union[LineupAssignment, Dict]],
) -> Dict:
    """
    Replace a match lineup.

    Args:
        session: Database session
        match_id: Match to update
        assignments: {position, player_id} entries; several entries for the
            same position fill it in order, a None player_id is skipped

    Raises:
        MatchNotFoundError: If the match doesn't exist
        ValueError: If an assignment names an unknown position
    """
    match = await _get_match_or_raise(session, match_id)

    lineup = empty_lineup()
    for assignment in assignments:
        if not isinstance(assignment, LineupAssignment):
            assignment = LineupAssignment.model_validate(assignment)
        if assignment.position not in LINEUP_POSITIONS:
            raise ValueError(f"Invalid lineup position: {assignment.position}")
        if assignment.player_id:
            lineup[assignment.position].append(assignment.player_id)

    logger.debug("Updating lineup of match %s: %s", match_id, lineup)
    match.lineup = lineup
    await session.commit()
    return await _hydrated(session, match)


async def update_score(session: AsyncSession, match_id: str, home_score: int, away_score: int) -> Dict:
    """Record the score of a match."""
    if home_score < 0 or away_score < 0:
        raise ValueError("Scores cannot be negative")
    match = await _get_match_or_raise(session, match_id)
    match.home_score = home_score
    match.away_score = away_score
    await session.commit()
    return await _hydrated(session, match)


async def update_status(
    session: AsyncSession,
    match_id: str,
    status: str,
    cancellation_reason: Optional[str] = None,
) -> Dict:
    """Change the status of a match."""
    if status not in VALID_STATUSES:
        raise ValueError(f"Invalid match status: {status}")
    match = await _get_match_or_raise(session, match_id)
    match.status = status
    if cancellation_reason is not None:
        match.cancellation_reason = cancellation_reason
    await session.commit()
    return await _hydrated(session, match)


async def toggle_player_availability(
    session: AsyncSession,
    match_id: str,
    player_id: str,
    is_available: bool,
) -> Dict:
    """
    Mark a player available (pull from unavailable_players) or unavailable (add-to-set).

    Raises:
        MatchNotFoundError: If the match doesn't exist
    """
    await _get_match_or_raise(session, match_id)

    if is_available:
        operation = Pull(("unavailable_players",), (player_id,))
    else:
        operation = AddToSet("unavailable_players", (player_id,))
    await apply_operation(session, Match, Match.id == match_id, operation)
    await session.commit()

    match = await _get_match_or_raise(session, match_id)
    return await _hydrated(session, match)


async def delete_match(session: AsyncSession, match_id: str) -> None:
    """Delete a match."""
    match = await _get_match_or_raise(session, match_id)
    await session.delete(match)
    await session.commit()
    logger.info("Deleted match %s", match_id)
