"""
Per-key serialization of check-then-write sequences.

Two layers: an in-process ``asyncio.Lock`` registry for calls served by the
same worker, and a PostgreSQL transaction-scoped advisory lock for calls
spread across workers and replicas.
"""

import asyncio
import hashlib
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import date

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession


def event_lock_key(student_id: int, event_type_id: int, event_date: date) -> str:
    return f"event:{student_id}:{event_type_id}:{event_date.isoformat()}"


def family_lock_key(user_id: int, year: int, family_reference: str) -> str:
    return f"family:{user_id}:{year}:{family_reference}"


def advisory_lock_id(key: str) -> int:
    """Derive a stable signed bigint lock id from an arbitrary string key."""
    digest = hashlib.blake2b(key.encode("utf-8"), digest_size=8).digest()
    # 63-bit positive space avoids signed bigint surprises.
    return int.from_bytes(digest, "big", signed=False) & 0x7FFF_FFFF_FFFF_FFFF


async def acquire_advisory_xact_lock(session: AsyncSession, key: str) -> bool:
    """Take a transaction-scoped advisory lock on PostgreSQL.

    Released automatically on commit or rollback. Other dialects rely on the
    in-process lock alone; returns whether a database lock was taken.
    """
    if session.get_bind().dialect.name != "postgresql":
        return False
    await session.execute(
        text("SELECT pg_advisory_xact_lock(:lock_id)"),
        {"lock_id": advisory_lock_id(key)},
    )
    return True


class KeyedLocks:
    """Registry of asyncio locks keyed by string, dropped when idle."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    @asynccontextmanager
    async def hold_all(self, *keys: str) -> AsyncIterator[None]:
        """Hold several keys at once, always acquired in sorted order."""
        async with AsyncExitStack() as stack:
            for key in sorted(set(keys)):
                await stack.enter_async_context(self.hold(key))
            yield
