"""
Key-value persistence for OAuth state and the current access token.

Two backends implement the same async interface: an in-process dict for
development and tests, and a SQLAlchemy-backed table for the hosted row
store. Values are JSON-compatible dicts; entries may carry a TTL.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from bob_python_backend.models import Base, KVEntry

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        ...

    async def set(self, key: str, value: Dict[str, Any], ttl_seconds: Optional[float] = None) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def pop(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the live value and remove it in the same step."""
        ...

    async def purge_expired(self) -> int:
        ...


def _expiry(now: float, ttl_seconds: Optional[float]) -> Optional[float]:
    return now + ttl_seconds if ttl_seconds is not None else None


def _is_expired(expires_at: Optional[float], now: float) -> bool:
    return expires_at is not None and expires_at <= now


class InMemoryStore:
    """Dict-backed store. Each method completes without awaiting, so it is atomic on one event loop."""

    def __init__(self, clock: Clock = time.time) -> None:
        self._entries: Dict[str, Tuple[Dict[str, Any], Optional[float]]] = {}
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    def _live(self, key: str) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if _is_expired(expires_at, self._clock()):
            del self._entries[key]
            return None
        return value

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        value = self._live(key)
        return dict(value) if value is not None else None

    async def set(self, key: str, value: Dict[str, Any], ttl_seconds: Optional[float] = None) -> None:
        self._sweep()
        self._entries[key] = (dict(value), _expiry(self._clock(), ttl_seconds))

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def pop(self, key: str) -> Optional[Dict[str, Any]]:
        value = self._live(key)
        self._entries.pop(key, None)
        return value

    async def purge_expired(self) -> int:
        return self._sweep()

    def _sweep(self) -> int:
        now = self._clock()
        stale = [key for key, (_, expires_at) in self._entries.items() if _is_expired(expires_at, now)]
        for key in stale:
            del self._entries[key]
        return len(stale)


class SqlKeyValueStore:
    """Store backed by the ``kv_entries`` table."""

    def __init__(self, session_factory: async_sessionmaker, clock: Clock = time.time) -> None:
        self._session_factory = session_factory
        self._clock = clock

    @staticmethod
    async def create_tables(engine: AsyncEngine) -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        async with self._session_factory() as session:
            entry = await session.get(KVEntry, key)
            if entry is None:
                return None
            if _is_expired(entry.expires_at, self._clock()):
                await session.delete(entry)
                await session.commit()
                return None
            return dict(entry.value)

    async def set(self, key: str, value: Dict[str, Any], ttl_seconds: Optional[float] = None) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await session.merge(
                    KVEntry(key=key, value=dict(value), expires_at=_expiry(self._clock(), ttl_seconds))
                )

    async def delete(self, key: str) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(delete(KVEntry).where(KVEntry.key == key))

    async def pop(self, key: str) -> Optional[Dict[str, Any]]:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    select(KVEntry).where(KVEntry.key == key).with_for_update()
                )
                entry = result.scalar_one_or_none()
                if entry is None:
                    return None
                value = dict(entry.value)
                expired = _is_expired(entry.expires_at, self._clock())
                await session.delete(entry)
        if expired:
            logger.debug("Discarded expired entry %s", key)
            return None
        return value

    async def purge_expired(self) -> int:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(KVEntry).where(KVEntry.expires_at.is_not(None), KVEntry.expires_at <= self._clock())
                )
        return result.rowcount or 0
