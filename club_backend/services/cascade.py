"""
Declarative cascades for the roster relationship model.

A cascade is a list of CascadeStep tuples (target model, filter, operator).
One interpreter runs the whole list, chosen per call from the database's
transaction support:

- TransactionalCascade: every step in one transaction, commit together or
  roll back together (TransactionAbortedError).
- SequentialCascade: each step committed on its own. A cleanup step failing
  after the primary write committed leaves stale match references behind.
  That drift is logged, not raised; lineup population drops unresolved ids.

Primary steps (membership change, entity delete) must come before cleanup
steps in a plan.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import and_, false, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from club_backend.database.models import Match
from club_backend.database.operators import (
    Pull,
    apply_operation,
    as_tuple,
    json_array_contains,
    json_document_contains,
)
from club_backend.services import transaction_capability
from club_backend.services.exceptions import TransactionAbortedError

logger = logging.getLogger(__name__)

MATCH_PLAYER_REFERENCE_FIELDS = ("unavailable_players", "lineup")
"""Match columns holding player ids."""


@dataclass(frozen=True)
class CascadeStep:
    """One write of a cascade: apply operation to rows of model matching where."""

    label: str
    model: Any
    where: Optional[ColumnElement]
    operation: Any
    primary: bool = True


def referencing_matches(player_ids: Iterable[str]) -> ColumnElement:
    """Filter for matches whose lineup or unavailable list mentions any of player_ids."""
    clauses = []
    for player_id in player_ids:
        clauses.append(json_array_contains(Match.unavailable_players, player_id))
        clauses.append(json_document_contains(Match.lineup, player_id))
    return or_(*clauses) if clauses else false()


def match_reference_cleanup(
    player_ids: Iterable[str],
    home_team_ids: Optional[Iterable[str]] = None,
) -> CascadeStep:
    """
    Step stripping player ids from match lineups and unavailable lists.

    Args:
        player_ids: Players whose references are removed
        home_team_ids: Restrict to matches of these home teams; None means all matches
    """
    player_ids = as_tuple(player_ids)
    # Only lock matches that actually reference one of the players
    where = referencing_matches(player_ids)
    if home_team_ids is not None:
        where = and_(Match.home_team_id.in_(list(as_tuple(home_team_ids))), where)
    return CascadeStep(
        label="match reference cleanup",
        model=Match,
        where=where,
        operation=Pull(MATCH_PLAYER_REFERENCE_FIELDS, player_ids),
        primary=False,
    )


class TransactionalCascade:
    """Runs every step inside the session's current transaction."""

    transactional = True

    async def run(self, session: AsyncSession, label: str, steps: List[CascadeStep]) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        try:
            for step in steps:
                counts[step.label] = await apply_operation(
                    session, step.model, step.where, step.operation
                )
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error("Cascade '%s' rolled back: %s", label, e, exc_info=True)
            raise TransactionAbortedError(label, str(e)) from e

        logger.info("Cascade '%s' committed: %s", label, counts)
        return counts


class SequentialCascade:
    """Commits each step on its own; no rollback across steps."""

    transactional = False

    async def run(self, session: AsyncSession, label: str, steps: List[CascadeStep]) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        primary_committed = False
        for step in steps:
            try:
                counts[step.label] = await apply_operation(
                    session, step.model, step.where, step.operation
                )
                await session.commit()
            except Exception as e:
                await session.rollback()
                if step.primary or not primary_committed:
                    raise
                logger.warning(
                    "Cascade drift in '%s': step '%s' failed after earlier writes committed, "
                    "stale references remain: %s",
                    label, step.label, e,
                )
                counts[step.label] = 0
                continue
            primary_committed = primary_committed or step.primary

        logger.info("Cascade '%s' applied sequentially: %s", label, counts)
        return counts


async def get_cascade_executor(session: AsyncSession):
    """Pick the cascade interpreter for this call."""
    if await transaction_capability.supports_transactions(session):
        return TransactionalCascade()
    logger.warning("Transactions not supported - using sequential operations")
    return SequentialCascade()


async def run_cascade(session: AsyncSession, label: str, steps: List[CascadeStep]) -> Dict[str, int]:
    """
    Execute a cascade plan with the interpreter the database supports.

    Returns:
        Modified row count per step label
    """
    executor = await get_cascade_executor(session)
    return await executor.run(session, label, steps)
