"""
Team service.

Teams store no roster. Every roster below is computed from Player.team_ids at
read time (active players only, unless stated otherwise).
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from club_backend.database.models import Match, Player, Team, User
from club_backend.database.operators import DeleteDocuments, Pull, json_array_contains
from club_backend.models.schemas import TeamStatsResponse
from club_backend.services.cascade import CascadeStep, run_cascade
from club_backend.services.exceptions import TeamInUseError, TeamNotFoundError
from club_backend.services.player_service import count_players_in_team, player_to_dict

logger = logging.getLogger(__name__)

TEAM_UPDATABLE_FIELDS = {"name", "match_level"}


def team_to_dict(team: Team, player_ids: Optional[List[str]] = None) -> Dict:
    """Serialize a team with its computed roster."""
    return {
        "id": team.id,
        "name": team.name,
        "match_level": team.match_level,
        "created_by_id": team.created_by_id,
        "player_ids": list(player_ids or []),
        "created_at": team.created_at.isoformat() if team.created_at else None,
        "updated_at": team.updated_at.isoformat() if team.updated_at else None,
    }


async def _get_team_or_raise(session: AsyncSession, team_id: str) -> Team:
    result = await session.execute(select(Team).where(Team.id == team_id))
    team = result.scalar_one_or_none()
    if team is None:
        raise TeamNotFoundError("Team not found")
    return team


async def _active_roster_ids(session: AsyncSession, team_id: str) -> List[str]:
    result = await session.execute(
        select(Player.id)
        .where(
            json_array_contains(Player.team_ids, team_id),
            Player.is_active_player.is_(True),
        )
        .order_by(Player.created_at)
    )
    return list(result.scalars().all())


async def _active_rosters_by_team(session: AsyncSession, team_ids: List[str]) -> Dict[str, List[str]]:
    """Rosters for many teams from a single player query."""
    if not team_ids:
        return {}
    result = await session.execute(
        select(Player.id, Player.team_ids)
        .where(
            or_(*(json_array_contains(Player.team_ids, team_id) for team_id in team_ids)),
            Player.is_active_player.is_(True),
        )
        .order_by(Player.created_at)
    )
    wanted = set(team_ids)
    rosters: Dict[str, List[str]] = defaultdict(list)
    for player_id, player_team_ids in result.all():
        for team_id in player_team_ids or []:
            if team_id in wanted:
                rosters[team_id].append(player_id)
    return rosters


async def create_team(
    session: AsyncSession,
    name: str,
    created_by_id: Optional[str] = None,
    match_level: Optional[str] = None,
) -> Dict:
    """Create a team."""
    name = name.strip()
    if len(name) < 2:
        raise ValueError("Team name too short")
    if len(name) > 50:
        raise ValueError("Team name too long")

    team = Team(name=name, match_level=match_level, created_by_id=created_by_id)
    session.add(team)
    await session.commit()
    logger.info("Created team %s '%s'", team.id, name)
    return team_to_dict(team)


async def get_team(session: AsyncSession, team_id: str) -> Optional[Dict]:
    """Get a team with player_ids computed from Player.team_ids, or None."""
    result = await session.execute(select(Team).where(Team.id == team_id))
    team = result.scalar_one_or_none()
    if team is None:
        return None
    return team_to_dict(team, await _active_roster_ids(session, team_id))


async def update_team(session: AsyncSession, team_id: str, updates: Dict) -> Dict:
    """
    Update team attributes.

    player_ids is computed, not stored; it is ignored here. Roster changes go
    through player_service.add_player_to_team / remove_player_from_team.
    """
    team = await _get_team_or_raise(session, team_id)

    if "player_ids" in updates:
        logger.warning(
            "player_ids cannot be updated directly. Use add_player_to_team/remove_player_from_team"
        )

    for key, value in updates.items():
        if key in TEAM_UPDATABLE_FIELDS:
            setattr(team, key, value)
    await session.commit()
    return team_to_dict(team, await _active_roster_ids(session, team_id))


async def delete_team(session: AsyncSession, team_id: str) -> None:
    """
    Delete a team and drop its id from every player's team_ids.

    Raises:
        TeamNotFoundError: If the team doesn't exist
        TeamInUseError: If matches still have this team as home team
    """
    await _get_team_or_raise(session, team_id)

    result = await session.execute(
        select(func.count(Match.id)).where(Match.home_team_id == team_id)
    )
    if result.scalar():
        raise TeamInUseError("Cannot delete a team that still has matches")

    steps = [
        CascadeStep(
            label="pull team from players",
            model=Player,
            where=json_array_contains(Player.team_ids, team_id),
            operation=Pull(("team_ids",), (team_id,)),
        ),
        CascadeStep(
            label="delete team",
            model=Team,
            where=Team.id == team_id,
            operation=DeleteDocuments(),
        ),
    ]
    await run_cascade(session, "delete team", steps)
    logger.info("Deleted team %s", team_id)


async def get_team_players(session: AsyncSession, team_id: str) -> List[Dict]:
    """Active players of a team, computed from Player.team_ids."""
    await _get_team_or_raise(session, team_id)
    result = await session.execute(
        select(Player)
        .where(
            json_array_contains(Player.team_ids, team_id),
            Player.is_active_player.is_(True),
        )
        .order_by(Player.created_at)
    )
    return [player_to_dict(player) for player in result.scalars().all()]


async def list_teams(
    session: AsyncSession,
    match_level: Optional[str] = None,
    created_by_id: Optional[str] = None,
) -> List[Dict]:
    """List teams, newest first, each with its computed roster."""
    stmt = select(Team)
    if match_level:
        stmt = stmt.where(Team.match_level == match_level)
    if created_by_id:
        stmt = stmt.where(Team.created_by_id == created_by_id)
    result = await session.execute(stmt.order_by(Team.created_at.desc()))
    teams = result.scalars().all()

    rosters = await _active_rosters_by_team(session, [team.id for team in teams])
    return [team_to_dict(team, rosters.get(team.id, [])) for team in teams]


async def get_teams_for_player(session: AsyncSession, player_id: str) -> List[Dict]:
    """Teams listed in a player's team_ids; empty if the player doesn't exist."""
    result = await session.execute(select(Player.team_ids).where(Player.id == player_id))
    team_ids = result.scalar_one_or_none()
    if not team_ids:
        return []

    result = await session.execute(select(Team).where(Team.id.in_(list(team_ids))))
    teams = result.scalars().all()
    rosters = await _active_rosters_by_team(session, [team.id for team in teams])
    return [team_to_dict(team, rosters.get(team.id, [])) for team in teams]


async def get_team_with_stats(session: AsyncSession, team_id: str) -> Dict:
    """Team dict plus total and active player counts."""
    team = await get_team(session, team_id)
    if team is None:
        raise TeamNotFoundError("Team not found")
    team["player_count"] = await count_players_in_team(session, team_id)
    team["active_player_count"] = await count_players_in_team(session, team_id, active_only=True)
    return team


async def get_team_stats(session: AsyncSession, team_id: str) -> TeamStatsResponse:
    """
    Player counts of a team by gender (active and inactive players).

    Joins players to their users and groups by gender in one query.
    """
    result = await session.execute(
        select(User.gender, func.count(Player.id))
        .join(User, Player.user_id == User.id)
        .where(json_array_contains(Player.team_ids, team_id))
        .group_by(User.gender)
    )
    stats = TeamStatsResponse()
    for gender, count in result.all():
        stats.total += count
        if gender == "male":
            stats.male = count
        elif gender == "female":
            stats.female = count
    return stats
