"""
Player service layer.

Player.team_ids is the single source of truth for team membership: adding or
removing a player writes only that array, and team rosters are computed from
it on read. Removing a membership cascades the player out of the team's
matches (lineup positions and unavailable list).
"""

import logging
from typing import Dict, List, Optional, Sequence, Union

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from club_backend.database.models import Player, Team, User
from club_backend.database.operators import (
    AddToSet,
    Combined,
    Increment,
    Pull,
    SetFields,
    apply_operation,
    as_tuple,
    json_array_contains,
)
from club_backend.models.schemas import (
    BatchPlayerUpdate,
    BatchUpdateResult,
    UpdatePlayerRequest,
)
from club_backend.services.cascade import CascadeStep, match_reference_cleanup, run_cascade
from club_backend.services.exceptions import PlayerNotFoundError, TeamNotFoundError
from club_backend.utils.constants import MIN_RANKING, MAX_RANKING

logger = logging.getLogger(__name__)


def player_to_dict(player: Player) -> Dict:
    """Serialize a player document."""
    return {
        "id": player.id,
        "user_id": player.user_id,
        "singles_ranking": player.singles_ranking,
        "doubles_ranking": player.doubles_ranking,
        "preferred_positions": list(player.preferred_positions or []),
        "is_active_player": player.is_active_player,
        "team_ids": list(player.team_ids or []),
        "created_at": player.created_at.isoformat() if player.created_at else None,
        "updated_at": player.updated_at.isoformat() if player.updated_at else None,
    }


def _player_with_user_to_dict(player: Player, user: Optional[User]) -> Dict:
    data = player_to_dict(player)
    data["user_name"] = user.display_name if user else ""
    data["user_email"] = user.email if user else ""
    data["user_gender"] = user.gender if user else None
    return data


async def _get_player_or_raise(session: AsyncSession, player_id: str) -> Player:
    result = await session.execute(select(Player).where(Player.id == player_id))
    player = result.scalar_one_or_none()
    if player is None:
        raise PlayerNotFoundError("Player not found")
    return player


async def _ensure_teams_exist(session: AsyncSession, team_ids: Sequence[str]) -> None:
    if not team_ids:
        return
    result = await session.execute(select(Team.id).where(Team.id.in_(list(team_ids))))
    found = set(result.scalars().all())
    missing = [team_id for team_id in team_ids if team_id not in found]
    if missing:
        raise TeamNotFoundError(f"Team not found: {', '.join(missing)}")


async def get_player(session: AsyncSession, player_id: str) -> Optional[Dict]:
    """Get a player by id, or None."""
    result = await session.execute(select(Player).where(Player.id == player_id))
    player = result.scalar_one_or_none()
    return player_to_dict(player) if player else None


async def get_player_by_user_id(session: AsyncSession, user_id: str) -> Optional[Dict]:
    """Get the player owned by a user, or None."""
    result = await session.execute(select(Player).where(Player.user_id == user_id))
    player = result.scalar_one_or_none()
    return player_to_dict(player) if player else None


async def list_players_with_user_info(session: AsyncSession) -> List[Dict]:
    """All players with their user's name, email and gender (single join)."""
    result = await session.execute(
        select(Player, User)
        .outerjoin(User, Player.user_id == User.id)
        .order_by(User.last_name, User.first_name)
    )
    return [_player_with_user_to_dict(player, user) for player, user in result.all()]


async def get_active_players_for_team(session: AsyncSession, team_id: str) -> List[Dict]:
    """Active players whose team_ids contain team_id, with user info."""
    result = await session.execute(
        select(Player, User)
        .outerjoin(User, Player.user_id == User.id)
        .where(
            json_array_contains(Player.team_ids, team_id),
            Player.is_active_player.is_(True),
        )
        .order_by(User.last_name, User.first_name)
    )
    return [_player_with_user_to_dict(player, user) for player, user in result.all()]


async def update_player_sports_data(
    session: AsyncSession,
    player_id: str,
    updates: Union[UpdatePlayerRequest, Dict],
) -> Dict:
    """
    Update a player's rankings, preferred positions, active flag or teams.

    A team_ids replacement that drops teams cascades like
    remove_player_from_team for each dropped team.

    Raises:
        PlayerNotFoundError: If the player doesn't exist
        TeamNotFoundError: If team_ids names an unknown team
    """
    if not isinstance(updates, UpdatePlayerRequest):
        updates = UpdatePlayerRequest.model_validate(updates)

    player = await _get_player_or_raise(session, player_id)

    values = updates.model_dump(exclude_none=True, exclude={"team_ids"})
    dropped_teams: List[str] = []
    if updates.team_ids is not None:
        new_team_ids = list(dict.fromkeys(as_tuple(updates.team_ids)))
        await _ensure_teams_exist(session, new_team_ids)
        dropped_teams = [team_id for team_id in (player.team_ids or []) if team_id not in new_team_ids]
        values["team_ids"] = new_team_ids

    if not values:
        return player_to_dict(player)

    steps = [
        CascadeStep(
            label="update player",
            model=Player,
            where=Player.id == player_id,
            operation=SetFields(values),
        )
    ]
    if dropped_teams:
        steps.append(match_reference_cleanup([player_id], dropped_teams))

    await run_cascade(session, "update player sports data", steps)
    player = await _get_player_or_raise(session, player_id)
    return player_to_dict(player)


async def add_player_to_team(session: AsyncSession, player_id: str, team_id: str) -> Dict:
    """
    Add a player to a team (set-union into Player.team_ids).

    Calling it again for the same pair changes nothing.

    Raises:
        PlayerNotFoundError: If the player doesn't exist
        TeamNotFoundError: If the team doesn't exist
    """
    await _get_player_or_raise(session, player_id)
    await _ensure_teams_exist(session, [team_id])

    modified = await apply_operation(
        session, Player, Player.id == player_id, AddToSet("team_ids", (team_id,))
    )
    await session.commit()
    if modified:
        logger.info("Added player %s to team %s", player_id, team_id)

    player = await _get_player_or_raise(session, player_id)
    return player_to_dict(player)


async def remove_player_from_team(session: AsyncSession, player_id: str, team_id: str) -> Dict:
    """
    Remove a player from a team and strip it from the team's matches.

    The team id is pulled from Player.team_ids; then the player id is pulled
    from lineup positions and unavailable_players of every match whose home
    team is team_id. Both writes commit together when the database supports
    transactions.

    Raises:
        PlayerNotFoundError: If the player doesn't exist
        TeamNotFoundError: If the team doesn't exist
        TransactionAbortedError: If the transactional cascade was rolled back
    """
    await _get_player_or_raise(session, player_id)
    await _ensure_teams_exist(session, [team_id])

    steps = [
        CascadeStep(
            label="pull team from player",
            model=Player,
            where=Player.id == player_id,
            operation=Pull(("team_ids",), (team_id,)),
        ),
        match_reference_cleanup([player_id], [team_id]),
    ]
    await run_cascade(session, "remove player from team", steps)
    logger.info("Removed player %s from team %s", player_id, team_id)

    player = await _get_player_or_raise(session, player_id)
    return player_to_dict(player)


async def batch_update_players(
    session: AsyncSession,
    player_ids: Sequence[str],
    updates: Union[BatchPlayerUpdate, Dict],
) -> BatchUpdateResult:
    """
    Apply one set of updates to many players.

    Field sets and ranking offsets run as one pass over the players; team
    additions/removals only touch Player.team_ids. Removals also strip the
    players from matches of the removed teams.

    Args:
        session: Database session
        player_ids: Players to update
        updates: BatchPlayerUpdate or a plain dict using its field names or aliases

    Returns:
        BatchUpdateResult; modified_count is the field update's count when
        fields were set, otherwise the number of targeted players
    """
    if not player_ids:
        return BatchUpdateResult(modified_count=0)

    if not isinstance(updates, BatchPlayerUpdate):
        updates = BatchPlayerUpdate.model_validate(updates)

    ids = list(dict.fromkeys(as_tuple(player_ids)))
    targets = Player.id.in_(ids)

    field_operations = []
    field_values = updates.field_values()
    if field_values:
        field_operations.append(SetFields(field_values))
    ranking_offsets = updates.ranking_offsets()
    if ranking_offsets:
        field_operations.append(Increment(ranking_offsets, lower=MIN_RANKING, upper=MAX_RANKING))

    steps: List[CascadeStep] = []
    if field_operations:
        steps.append(
            CascadeStep(
                label="update fields",
                model=Player,
                where=targets,
                operation=Combined(tuple(field_operations)),
            )
        )

    if updates.add_to_teams:
        add_to_teams = as_tuple(updates.add_to_teams)
        await _ensure_teams_exist(session, add_to_teams)
        steps.append(
            CascadeStep(
                label="add to teams",
                model=Player,
                where=targets,
                operation=AddToSet("team_ids", add_to_teams),
            )
        )

    if updates.remove_from_teams:
        remove_from_teams = as_tuple(updates.remove_from_teams)
        steps.append(
            CascadeStep(
                label="remove from teams",
                model=Player,
                where=targets,
                operation=Pull(("team_ids",), remove_from_teams),
            )
        )
        steps.append(match_reference_cleanup(ids, remove_from_teams))

    if not steps:
        logger.info("Batch update for %d players requested no changes", len(ids))
        return BatchUpdateResult(modified_count=0)

    counts = await run_cascade(session, "batch update players", steps)

    if field_operations:
        return BatchUpdateResult(modified_count=counts["update fields"])
    # Team-only updates report every targeted player
    return BatchUpdateResult(modified_count=len(ids))


async def count_players_in_team(session: AsyncSession, team_id: str, active_only: bool = False) -> int:
    """Number of players whose team_ids contain team_id."""
    stmt = select(func.count(Player.id)).where(json_array_contains(Player.team_ids, team_id))
    if active_only:
        stmt = stmt.where(Player.is_active_player.is_(True))
    result = await session.execute(stmt)
    return result.scalar() or 0
