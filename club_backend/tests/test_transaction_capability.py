"""
Tests for the transaction capability probe and its TTL cache.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from club_backend.services import transaction_capability
from club_backend.services.transaction_capability import (
    TransactionCapabilityDetector,
    probe_transaction_support,
)


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def _fake_session(url="postgresql+asyncpg://db-primary/club"):
    session = MagicMock()
    session.bind.url = url
    return session


@pytest.mark.asyncio
async def test_sqlite_supports_transactions(db_session):
    """The test database (SQLite by default) runs cascades transactionally."""
    assert await probe_transaction_support(db_session) is True


@pytest.mark.asyncio
async def test_autocommit_connection_has_no_transactions(db_session):
    await db_session.connection(execution_options={"isolation_level": "AUTOCOMMIT"})
    assert await probe_transaction_support(db_session) is False


@pytest.mark.asyncio
async def test_probe_error_means_no_transactions():
    session = MagicMock()
    session.connection = AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception("gone")))

    assert await probe_transaction_support(session) is False


@pytest.mark.asyncio
async def test_detector_caches_within_ttl(monkeypatch):
    probe = AsyncMock(return_value=True)
    monkeypatch.setattr(transaction_capability, "probe_transaction_support", probe)
    clock = FakeClock()
    detector = TransactionCapabilityDetector(ttl_seconds=5, clock=clock)
    session = _fake_session()

    assert await detector.supports_transactions(session) is True
    clock.now += 4
    assert await detector.supports_transactions(session) is True
    assert probe.await_count == 1


@pytest.mark.asyncio
async def test_detector_reprobes_after_ttl(monkeypatch):
    """A failover between calls is picked up once the cached answer expires."""
    probe = AsyncMock(side_effect=[True, False])
    monkeypatch.setattr(transaction_capability, "probe_transaction_support", probe)
    clock = FakeClock()
    detector = TransactionCapabilityDetector(ttl_seconds=5, clock=clock)
    session = _fake_session()

    assert await detector.supports_transactions(session) is True
    clock.now += 6
    assert await detector.supports_transactions(session) is False
    assert probe.await_count == 2


@pytest.mark.asyncio
async def test_detector_caches_per_database_url(monkeypatch):
    probe = AsyncMock(side_effect=[True, False])
    monkeypatch.setattr(transaction_capability, "probe_transaction_support", probe)
    detector = TransactionCapabilityDetector(ttl_seconds=5, clock=FakeClock())

    assert await detector.supports_transactions(_fake_session("postgresql://primary/club")) is True
    assert await detector.supports_transactions(_fake_session("postgresql://standby/club")) is False


@pytest.mark.asyncio
async def test_zero_ttl_probes_every_call(monkeypatch):
    probe = AsyncMock(return_value=True)
    monkeypatch.setattr(transaction_capability, "probe_transaction_support", probe)
    detector = TransactionCapabilityDetector(ttl_seconds=0, clock=FakeClock())
    session = _fake_session()

    await detector.supports_transactions(session)
    await detector.supports_transactions(session)
    assert probe.await_count == 2


@pytest.mark.asyncio
async def test_invalidate_forgets_cached_results(monkeypatch):
    probe = AsyncMock(return_value=True)
    monkeypatch.setattr(transaction_capability, "probe_transaction_support", probe)
    detector = TransactionCapabilityDetector(ttl_seconds=60, clock=FakeClock())
    session = _fake_session()

    await detector.supports_transactions(session)
    detector.invalidate()
    await detector.supports_transactions(session)
    assert probe.await_count == 2


def _mysql_session(engines_by_table):
    result = MagicMock()
    result.fetchall.return_value = list(engines_by_table.items())
    conn = MagicMock()
    conn.dialect.name = "mysql"
    conn.run_sync = AsyncMock(return_value="REPEATABLE READ")
    conn.execute = AsyncMock(return_value=result)
    session = MagicMock()
    session.connection = AsyncMock(return_value=conn)
    return session


@pytest.mark.asyncio
async def test_mysql_all_innodb_supports_transactions():
    tables = {name: "InnoDB" for name in ("users", "players", "teams", "matches")}
    assert await probe_transaction_support(_mysql_session(tables)) is True


@pytest.mark.asyncio
async def test_mysql_non_transactional_roster_table():
    tables = {"users": "InnoDB", "players": "MyISAM", "teams": "InnoDB", "matches": "InnoDB"}
    assert await probe_transaction_support(_mysql_session(tables)) is False
