"""
Tests for the dev seed script.
"""

import pytest
from sqlalchemy import select, func

from club_backend.database.models import Match, Player, Team, User
from club_backend.services import match_service
from scripts import seed_club


async def _count(db_session, model):
    result = await db_session.execute(select(func.count()).select_from(model))
    return result.scalar()


@pytest.mark.asyncio
async def test_seed_creates_club(db_session):
    ids = await seed_club.seed(db_session)

    assert await _count(db_session, User) == 5
    # The applicant stays a non-player
    assert await _count(db_session, Player) == 4
    assert await _count(db_session, Team) == 2

    match = await match_service.get_match(db_session, ids["match"])
    assert [p["first_name"] for p in match["lineup"]["mens_doubles_1"]] == ["Bob", "Carl"]


@pytest.mark.asyncio
async def test_seed_is_idempotent(db_session):
    first = await seed_club.seed(db_session)
    second = await seed_club.seed(db_session)

    assert first == second
    assert await _count(db_session, User) == 5
    assert await _count(db_session, Match) == 1


@pytest.mark.asyncio
async def test_main_uses_session_factory(db_session):
    await seed_club.main()
    assert await _count(db_session, Team) == 2


def test_parse_args():
    assert seed_club.parse_args(["--init-db"]).init_db is True
    assert seed_club.parse_args([]).init_db is False
