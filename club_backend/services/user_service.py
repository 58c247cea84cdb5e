"""
User service: user records and the Player lifecycle tied to User.is_player.

A Player exists exactly when its user has is_player set. Promotion creates
the Player document; demotion or user deletion removes it and cascades the
player's id out of every match.
"""

import logging
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from club_backend.database.models import User, Player, UserRole
from club_backend.database.operators import DeleteDocuments, SetFields
from club_backend.models.schemas import BatchPlayerEntityResult
from club_backend.services.cascade import CascadeStep, match_reference_cleanup, run_cascade
from club_backend.services.exceptions import (
    PlayerStatusUpdateError,
    RoleIneligibleError,
    UserNotFoundError,
)
from club_backend.services.player_service import player_to_dict
from club_backend.utils.constants import PLAYER_ELIGIBLE_ROLES

logger = logging.getLogger(__name__)

USER_UPDATABLE_FIELDS = {
    "email",
    "first_name",
    "last_name",
    "gender",
    "role",
    "membership_status",
}


def user_to_dict(user: User) -> Dict:
    """Serialize a user."""
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "full_name": user.display_name,
        "gender": user.gender,
        "role": user.role,
        "membership_status": user.membership_status,
        "is_player": user.is_player,
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "updated_at": user.updated_at.isoformat() if user.updated_at else None,
    }


async def _get_user_or_raise(session: AsyncSession, user_id: str) -> User:
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise UserNotFoundError("User not found")
    return user


async def _get_player_for_user(session: AsyncSession, user_id: str) -> Optional[Player]:
    result = await session.execute(select(Player).where(Player.user_id == user_id))
    return result.scalar_one_or_none()


def _new_player(user_id: str) -> Player:
    """Player document with default sports data."""
    return Player(
        user_id=user_id,
        singles_ranking=0,
        doubles_ranking=0,
        preferred_positions=[],
        is_active_player=True,
        team_ids=[],
    )


def _player_deletion_steps(player_id: str) -> List[CascadeStep]:
    """Delete the Player document, then strip it from every match (not team-scoped)."""
    return [
        CascadeStep(
            label="delete player",
            model=Player,
            where=Player.id == player_id,
            operation=DeleteDocuments(),
        ),
        match_reference_cleanup([player_id]),
    ]


async def create_user(
    session: AsyncSession,
    email: str,
    first_name: str,
    last_name: str,
    gender: str = "male",
    role: str = UserRole.APPLICANT.value,
    membership_status: str = "active",
) -> Dict:
    """Create a user. New users are never players; use set_player_status for that."""
    user = User(
        email=email.strip().lower(),
        first_name=first_name,
        last_name=last_name,
        gender=gender,
        role=role,
        membership_status=membership_status,
        is_player=False,
    )
    session.add(user)
    await session.commit()
    logger.info("Created user %s (%s)", user.id, user.email)
    return user_to_dict(user)


async def get_user(session: AsyncSession, user_id: str) -> Optional[Dict]:
    """Get a user by id, or None."""
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    return user_to_dict(user) if user else None


async def list_users(session: AsyncSession) -> List[Dict]:
    """List all users ordered by last name, first name."""
    result = await session.execute(select(User).order_by(User.last_name, User.first_name))
    return [user_to_dict(user) for user in result.scalars().all()]


async def update_user(session: AsyncSession, user_id: str, updates: Dict) -> Dict:
    """
    Update user data other than player status.

    Raises:
        PlayerStatusUpdateError: If updates contain is_player
        UserNotFoundError: If the user doesn't exist
    """
    if "is_player" in updates or "isPlayer" in updates:
        raise PlayerStatusUpdateError("Use set_player_status() to update player status")

    user = await _get_user_or_raise(session, user_id)
    for key, value in updates.items():
        if key in USER_UPDATABLE_FIELDS:
            setattr(user, key, value)
    await session.commit()
    return user_to_dict(user)


async def create_player_entity(session: AsyncSession, user_id: str) -> Dict:
    """
    Create the Player document for a user, or return the existing one.

    Args:
        session: Database session
        user_id: Owning user

    Returns:
        Player dict
    """
    await _get_user_or_raise(session, user_id)
    existing = await _get_player_for_user(session, user_id)
    if existing is not None:
        logger.info("Player already exists for user %s", user_id)
        return player_to_dict(existing)

    player = _new_player(user_id)
    session.add(player)
    await session.commit()
    logger.info("Created Player entity %s for user %s", player.id, user_id)
    return player_to_dict(player)


async def delete_player_entity(session: AsyncSession, user_id: str) -> None:
    """
    Delete a user's Player document with cascade cleanup.

    The player's id is pulled from lineups and unavailable lists of all
    matches. Team rosters need no write: they are computed from players.
    """
    player = await _get_player_for_user(session, user_id)
    if player is None:
        logger.info("No Player entity found for user %s", user_id)
        return

    await run_cascade(session, "delete player entity", _player_deletion_steps(player.id))
    logger.info("Deleted Player entity for user %s with cascade cleanup", user_id)


async def set_player_status(session: AsyncSession, user_id: str, should_be_player: bool) -> Dict:
    """
    Toggle a user's player status and manage the Player lifecycle.

    Args:
        session: Database session
        user_id: User to update
        should_be_player: Target status

    Returns:
        Updated user dict

    Raises:
        UserNotFoundError: If the user doesn't exist
        RoleIneligibleError: If promoting a role that can't play
    """
    user = await _get_user_or_raise(session, user_id)

    if should_be_player and user.role not in PLAYER_ELIGIBLE_ROLES:
        raise RoleIneligibleError(
            "Only members, guest players, and admins can be promoted to player status"
        )

    if user.is_player == should_be_player:
        return user_to_dict(user)

    if should_be_player:
        user.is_player = True
        if await _get_player_for_user(session, user_id) is None:
            session.add(_new_player(user_id))
        await session.commit()
        logger.info("User %s promoted to player", user_id)
        return user_to_dict(user)

    steps = [
        CascadeStep(
            label="clear player flag",
            model=User,
            where=User.id == user_id,
            operation=SetFields({"is_player": False}),
        )
    ]
    player = await _get_player_for_user(session, user_id)
    if player is not None:
        steps.extend(_player_deletion_steps(player.id))
    await run_cascade(session, "demote player", steps)
    logger.info("User %s demoted from player", user_id)

    user = await _get_user_or_raise(session, user_id)
    return user_to_dict(user)


async def delete_user(session: AsyncSession, user_id: str) -> None:
    """Delete a user, destroying its Player first (with match cleanup)."""
    await _get_user_or_raise(session, user_id)

    steps = []
    player = await _get_player_for_user(session, user_id)
    if player is not None:
        steps.append(
            CascadeStep(
                label="delete player",
                model=Player,
                where=Player.id == player.id,
                operation=DeleteDocuments(),
            )
        )
    steps.append(
        CascadeStep(
            label="delete user",
            model=User,
            where=User.id == user_id,
            operation=DeleteDocuments(),
        )
    )
    if player is not None:
        steps.append(match_reference_cleanup([player.id]))

    await run_cascade(session, "delete user", steps)
    logger.info("Deleted user %s", user_id)


async def batch_set_player_status(
    session: AsyncSession,
    user_ids: Sequence[str],
    should_be_player: bool,
) -> BatchPlayerEntityResult:
    """
    Apply set_player_status to many users, failing softly per user.

    Each user's outcome is independent: errors are collected and the
    remaining users are still processed.
    """
    player_ids: List[str] = []
    errors: List[str] = []

    for user_id in user_ids:
        try:
            await set_player_status(session, user_id, should_be_player)
            if should_be_player:
                player = await _get_player_for_user(session, user_id)
                if player is not None:
                    player_ids.append(player.id)
        except Exception as e:
            await session.rollback()
            errors.append(f"User {user_id}: {e}")
            logger.error("Failed to update player status for user %s: %s", user_id, e)

    if errors:
        logger.warning(
            "Batch player status update completed with %d errors: %s", len(errors), errors
        )

    return BatchPlayerEntityResult(player_ids=player_ids, errors=errors)


async def batch_create_players(session: AsyncSession, user_ids: Sequence[str]) -> BatchPlayerEntityResult:
    """Promote many users to players."""
    return await batch_set_player_status(session, user_ids, True)


async def batch_delete_players(session: AsyncSession, user_ids: Sequence[str]) -> List[str]:
    """Demote many users; returns error messages (empty if all succeeded)."""
    result = await batch_set_player_status(session, user_ids, False)
    return result.errors
