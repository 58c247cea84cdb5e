"""
Lineup population service.

Stored lineups map each position to an ordered list of player ids (older
documents may hold a single id or None instead). Population turns them into
PlayerDetail records with one batched Player/User query, however many
positions or matches are involved. Ids that no longer resolve are dropped
silently: a sequential cascade may leave stale references behind.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from club_backend.database.models import Player, User
from club_backend.models.schemas import PlayerDetail
from club_backend.utils.constants import LINEUP_POSITIONS

logger = logging.getLogger(__name__)

RawLineup = Optional[Any]  # Mapping[str, list | str | None] or iterable of (position, value)


def empty_lineup() -> Dict[str, list]:
    """Lineup with every known position present and empty."""
    return {position: [] for position in LINEUP_POSITIONS}


def normalize_lineup(raw_lineup: RawLineup) -> Dict[str, List[str]]:
    """
    Normalize any accepted lineup encoding to an ordered position -> [id] dict.

    Accepts a mapping or an iterable of (position, value) pairs. Each value may
    be a list/tuple of ids or a single id or None (legacy documents).
    """
    if raw_lineup is None:
        return {}

    items = raw_lineup.items() if isinstance(raw_lineup, Mapping) else raw_lineup

    normalized: Dict[str, List[str]] = {}
    for position, value in items:
        if value is None:
            ids = []
        elif isinstance(value, (list, tuple)):
            ids = [str(player_id) for player_id in value if player_id is not None]
        else:
            ids = [str(value)]
        normalized.setdefault(str(position), []).extend(ids)
    return normalized


def collect_player_ids(lineups: Iterable[Dict[str, List[str]]]) -> List[str]:
    """Deduplicated player ids across normalized lineups, first-seen order."""
    seen: Dict[str, None] = {}
    for lineup in lineups:
        for ids in lineup.values():
            for player_id in ids:
                seen.setdefault(player_id, None)
    return list(seen)


async def fetch_player_details(session: AsyncSession, player_ids: Sequence[str]) -> Dict[str, PlayerDetail]:
    """
    Load display details for players in a single query (Player joined to User).

    Players without an owning user are left out, like unknown ids.
    """
    if not player_ids:
        return {}

    result = await session.execute(
        select(Player.id, User.first_name, User.last_name, User.gender)
        .join(User, Player.user_id == User.id)
        .where(Player.id.in_(list(player_ids)))
    )
    return {
        row.id: PlayerDetail(
            id=row.id,
            first_name=row.first_name,
            last_name=row.last_name,
            gender=row.gender,
        )
        for row in result.all()
    }


def hydrate_lineup(
    normalized: Dict[str, List[str]],
    details: Dict[str, PlayerDetail],
) -> Dict[str, List[PlayerDetail]]:
    """Re-walk a normalized lineup in order, keeping only resolvable ids."""
    lineup = empty_lineup()
    for position, player_ids in normalized.items():
        if position not in lineup:
            logger.warning("Ignoring unknown lineup position '%s'", position)
            continue
        for player_id in player_ids:
            detail = details.get(player_id)
            if detail is not None:
                lineup[position].append(detail)
    return lineup


async def populate_lineup(session: AsyncSession, raw_lineup: RawLineup) -> Dict[str, List[PlayerDetail]]:
    """
    Hydrate one stored lineup.

    Args:
        session: Database session
        raw_lineup: Stored lineup in any accepted encoding

    Returns:
        Dict with every position, each an ordered list of PlayerDetail
    """
    normalized = normalize_lineup(raw_lineup)
    details = await fetch_player_details(session, collect_player_ids([normalized]))
    return hydrate_lineup(normalized, details)


def _raw_lineup_of(match: Any) -> RawLineup:
    if isinstance(match, Mapping):
        return match.get("lineup")
    return getattr(match, "lineup", None)


async def populate_many_lineups(session: AsyncSession, matches: Sequence[Any]) -> List[Dict[str, List[PlayerDetail]]]:
    """
    Hydrate the lineups of many matches with one player query in total.

    Args:
        session: Database session
        matches: Match rows or mappings carrying a "lineup" entry

    Returns:
        Hydrated lineups, in the same order as matches
    """
    normalized = [normalize_lineup(_raw_lineup_of(match)) for match in matches]
    details = await fetch_player_details(session, collect_player_ids(normalized))
    return [hydrate_lineup(lineup, details) for lineup in normalized]
