"""
Tests for the session generator in database.db.
"""

import pytest
from sqlalchemy import select

from club_backend.database import db
from club_backend.database.models import Team


async def _team_names(db_session):
    db_session.expunge_all()
    result = await db_session.execute(select(Team.name))
    return list(result.scalars().all())


@pytest.mark.asyncio
async def test_get_db_session_commits_on_success(db_session):
    async for session in db.get_db_session():
        session.add(Team(name="Committed"))

    assert await _team_names(db_session) == ["Committed"]


@pytest.mark.asyncio
async def test_get_db_session_rolls_back_on_error(db_session):
    sessions = db.get_db_session()
    session = await sessions.__anext__()
    session.add(Team(name="Discarded"))
    await session.flush()

    with pytest.raises(RuntimeError):
        await sessions.athrow(RuntimeError("handler failed"))

    assert await _team_names(db_session) == []
