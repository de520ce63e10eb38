"""
Async reader/writer lock guarding the resource registry.

Many actors read the registry at once while searching for vacancies; resources
write to it on every transition. Readers share the lock, a writer holds it
alone, and a waiting writer blocks new readers so that a burst of searches
cannot starve the publication of a transition.
"""

import asyncio
from typing import Any


class AsyncReaderWriterLock:
    """
    An async read-write lock with writer preference.

    Example:
        lock = AsyncReaderWriterLock()

        async with lock.read_lock():
            vacancies = [r for r in records.values() if r.is_vacant]

        async with lock.write_lock():
            records[resource_id] = record
    """

    def __init__(self) -> None:
        self._readers: int = 0
        self._writer: bool = False
        self._writers_waiting: int = 0
        self._cond = asyncio.Condition()

    async def acquire_read(self) -> None:
        """
        Acquire the lock for reading.

        Waits while a writer holds the lock or is queued for it.
        """
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and self._writers_waiting == 0)
            self._readers += 1

    async def acquire_write(self) -> None:
        """
        Acquire the lock for writing.

        Waits for all readers and any current writer to release.
        """
        async with self._cond:
            self._writers_waiting += 1
            try:
                await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
                self._writer = True
            finally:
                self._writers_waiting -= 1
                if not self._writer:
                    # A cancelled writer may have been the only thing holding readers back.
                    self._cond.notify_all()

    async def release_read(self) -> None:
        """
        Release the lock held for reading.

        Raises:
            RuntimeError: If no readers are currently holding the lock.
        """
        async with self._cond:
            if self._readers == 0:
                raise RuntimeError("Cannot release read lock: no readers holding the lock")
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    async def release_write(self) -> None:
        """
        Release the lock held for writing.

        Raises:
            RuntimeError: If no writer is currently holding the lock.
        """
        async with self._cond:
            if not self._writer:
                raise RuntimeError("Cannot release write lock: no writer holding the lock")
            self._writer = False
            self._cond.notify_all()

    def read_lock(self) -> "_ReadLockContext":
        """Return a context manager for acquiring the read lock."""
        return _ReadLockContext(self)

    def write_lock(self) -> "_WriteLockContext":
        """Return a context manager for acquiring the write lock."""
        return _WriteLockContext(self)

    def __repr__(self) -> str:
        if self._writer:
            state = "write_locked"
        elif self._readers > 0:
            state = "read_locked"
        else:
            state = "unlocked"
        return (
            f"AsyncReaderWriterLock({state}, readers={self._readers}, "
            f"pending_writers={self._writers_waiting})"
        )


class _ReadLockContext:
    def __init__(self, lock: AsyncReaderWriterLock) -> None:
        self._lock: AsyncReaderWriterLock = lock

    async def __aenter__(self) -> "_ReadLockContext":
        await self._lock.acquire_read()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self._lock.release_read()


class _WriteLockContext:
    def __init__(self, lock: AsyncReaderWriterLock) -> None:
        self._lock: AsyncReaderWriterLock = lock

    async def __aenter__(self) -> "_WriteLockContext":
        await self._lock.acquire_write()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self._lock.release_write()


__all__ = ["AsyncReaderWriterLock"]
