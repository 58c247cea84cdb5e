"""
Transaction capability detection.

Cascades run inside one transaction only when the database can actually
provide one. The probe is read-only and is re-run per cascade call; results
are cached for a few seconds per database URL, since a reconnect can land on
a different server (a failover promoting or demoting a node, for instance).
"""

import logging
import os
import time
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from club_backend.database.db import Base
from club_backend.utils.constants import DEFAULT_TRANSACTION_PROBE_TTL_SECONDS

logger = logging.getLogger(__name__)

TRANSACTION_PROBE_TTL_SECONDS = float(
    os.getenv("TRANSACTION_PROBE_TTL_SECONDS", str(DEFAULT_TRANSACTION_PROBE_TTL_SECONDS))
)

TRANSACTIONAL_MYSQL_ENGINES = {"innodb"}


def _isolation_level(sync_conn) -> str:
    # An explicit execution option (AUTOCOMMIT) wins over the server default
    requested = sync_conn.get_execution_options().get("isolation_level")
    return requested or sync_conn.get_isolation_level()


async def probe_transaction_support(session: AsyncSession) -> bool:
    """
    Ask the database whether multi-statement transactions are available.

    - AUTOCOMMIT connections never are
    - PostgreSQL: a primary is, a hot standby (pg_is_in_recovery) is not
    - MySQL/MariaDB: every roster table must use a transactional engine
    - SQLite and anything else: yes

    Probe failures are logged and reported as "not supported".
    """
    try:
        conn = await session.connection()
        isolation_level = await conn.run_sync(_isolation_level)
        if str(isolation_level).upper() == "AUTOCOMMIT":
            return False

        dialect = conn.dialect.name
        if dialect == "postgresql":
            result = await conn.execute(text("SELECT pg_is_in_recovery()"))
            return not bool(result.scalar())

        if dialect in ("mysql", "mariadb"):
            table_names = sorted(Base.metadata.tables.keys())
            result = await conn.execute(
                text(
                    "SELECT table_name, engine FROM information_schema.tables "
                    "WHERE table_schema = DATABASE()"
                )
            )
            engines = {row[0]: (row[1] or "").lower() for row in result.fetchall()}
            return all(
                engines.get(name) in TRANSACTIONAL_MYSQL_ENGINES
                for name in table_names
                if name in engines
            )

        return True
    except SQLAlchemyError as e:
        logger.warning("Transaction capability probe failed, assuming no transactions: %s", e)
        return False


class TransactionCapabilityDetector:
    """Short-TTL cache in front of probe_transaction_support, keyed by database URL."""

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = TRANSACTION_PROBE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._cache: Dict[str, Tuple[bool, float]] = {}

    @staticmethod
    def _cache_key(session: AsyncSession) -> str:
        bind = session.bind
        url = getattr(bind, "url", None)
        return str(url) if url is not None else "default"

    async def supports_transactions(self, session: AsyncSession) -> bool:
        key = self._cache_key(session)
        now = self._clock()
        cached = self._cache.get(key)
        if cached is not None and self.ttl_seconds > 0 and now - cached[1] < self.ttl_seconds:
            return cached[0]

        supported = await probe_transaction_support(session)
        self._cache[key] = (supported, now)
        logger.debug("Transaction support for %s: %s", key, supported)
        return supported

    def invalidate(self) -> None:
        """Forget every cached probe result."""
        self._cache.clear()


_detector = TransactionCapabilityDetector()


async def supports_transactions(session: AsyncSession) -> bool:
    """Whether cascades on this session's database can run in one transaction."""
    return await _detector.supports_transactions(session)


def get_detector() -> TransactionCapabilityDetector:
    """The process-wide detector (its cache is the only shared state)."""
    return _detector
