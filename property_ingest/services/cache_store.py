"""
Cache store backed by the ``scraper_cache`` table.

Memoizes expensive fetches as JSON blobs stamped with their creation
time. Freshness is decided by callers through ``is_fresh`` so each use
case can apply its own TTL; only the background purge deletes rows.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as postgres_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from property_ingest.db import CacheEntryDB, utcnow
from property_ingest.errors import PersistenceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """One cached fetch result."""

    key: str
    data: Any
    created_at: datetime
    is_active: bool = True


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything we write is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_fresh(entry: CacheEntry, ttl: timedelta, now: Optional[datetime] = None) -> bool:
    """True while ``entry`` is younger than ``ttl``."""
    now = now or utcnow()
    return now - _as_utc(entry.created_at) < ttl


class CacheStore:
    """Key/value cache over a SQL table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """
        Initialize the cache store.

        Args:
            session_factory: Factory for database sessions.
            clock: Source of the current time, used to stamp and purge rows.
        """
        self.session_factory = session_factory
        self.clock = clock
        self.ready = False

    async def ensure_ready(self) -> bool:
        """
        Check that the cache table is reachable.

        Returns:
            True if the table answered a count query. The result is also
            remembered on ``self.ready``.
        """
        try:
            async with self.session_factory() as session:
                count = await session.scalar(select(func.count()).select_from(CacheEntryDB))
            logger.info("scraper_cache table reachable (%d rows)", count or 0)
            self.ready = True
        except SQLAlchemyError as e:
            logger.error("scraper_cache table is not accessible: %s", e)
            self.ready = False
        return self.ready

    async def get(self, key: str) -> Optional[CacheEntry]:
        """
        Look up a cache entry, stale or not.

        Raises:
            PersistenceError: If the table cannot be read.
        """
        try:
            async with self.session_factory() as session:
                row = await session.get(CacheEntryDB, key)
        except SQLAlchemyError as e:
            logger.error("Error reading cache key %s: %s", key, e)
            raise PersistenceError("The property cache could not be read.") from e

        if row is None:
            return None
        return CacheEntry(
            key=row.key,
            data=row.data,
            created_at=_as_utc(row.created_at),
            is_active=row.is_active,
        )

    async def put(self, key: str, data: Any, is_active: bool = True) -> CacheEntry:
        """
        Insert or overwrite the entry for ``key``, stamping it with now.

        Raises:
            PersistenceError: If the write fails.
        """
        created_at = self.clock()
        values = {"key": key, "data": data, "created_at": created_at, "is_active": is_active}

        try:
            async with self.session_factory() as session:
                dialect = session.get_bind().dialect.name
                insert = postgres_insert if dialect == "postgresql" else sqlite_insert
                stmt = insert(CacheEntryDB).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["key"],
                    set_={
                        "data": stmt.excluded.data,
                        "created_at": stmt.excluded.created_at,
                        "is_active": stmt.excluded.is_active,
                    },
                )
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Error storing cache key %s: %s", key, e)
            raise PersistenceError("The property cache could not be updated.") from e

        return CacheEntry(**values)

    async def purge_expired(self, ttl: timedelta) -> int:
        """
        Delete every entry older than ``ttl``.

        Returns:
            Number of rows removed.
        """
        cutoff = self.clock() - ttl
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    delete(CacheEntryDB).where(CacheEntryDB.created_at < cutoff)
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Error purging expired cache entries: %s", e)
            raise PersistenceError("Expired cache entries could not be purged.") from e

        return result.rowcount or 0

    async def list_active_keys(self, prefix: str, limit: int) -> List[str]:
        """Keys starting with ``prefix`` whose cached listing is still active."""
        try:
            async with self.session_factory() as session:
                result = await session.scalars(
                    select(CacheEntryDB.key)
                    .where(CacheEntryDB.key.startswith(prefix, autoescape=True))
                    .where(CacheEntryDB.is_active.is_(True))
                    .order_by(CacheEntryDB.created_at)
                    .limit(limit)
                )
                return list(result)
        except SQLAlchemyError as e:
            logger.error("Error listing cache keys for %s: %s", prefix, e)
            raise PersistenceError("Cached listings could not be read.") from e

    async def mark_inactive(self, key: str) -> bool:
        """
        Flag a cached listing as no longer active.

        Also flips ``isActive`` inside the cached record so readers of the
        blob see the same state. Returns False when the key is absent.
        """
        try:
            async with self.session_factory() as session:
                row = await session.get(CacheEntryDB, key)
                if row is None:
                    return False

                data = row.data
                if isinstance(data, dict):
                    data = {**data, "isActive": False}

                row.is_active = False
                row.data = data
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Error marking %s inactive: %s", key, e)
            raise PersistenceError("Listing status could not be updated.") from e

        return True
