"""Per-sender turn locks.

A turn (read session -> decide -> act -> persist) holds the sender's lock for
its whole duration, so two messages sent in quick succession are processed
one after the other instead of overwriting each other's session.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from redis.exceptions import LockError, RedisError

from app.logging_config import get_logger

logger = get_logger("locks")


class LockUnavailableError(Exception):
    """The turn lock could not be acquired in time."""


class KeyedLock:
    """In-process asyncio locks keyed by sender id.

    asyncio.Lock wakes waiters in FIFO order, so turns for one sender run in
    the order their tasks reached the lock. Entries are dropped once no task
    holds or waits for them.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class RedisKeyedLock:
    """Redis-backed locks for deployments with several worker processes.

    While a holder runs, the lock's expiry is pushed back every third of
    timeout_seconds, so a long letter delivery cannot outlive the lock.
    """

    def __init__(
        self,
        redis_client,
        key_prefix: str = "evento:",
        timeout_seconds: float = 120.0,
        blocking_timeout_seconds: float = 60.0,
    ):
        self._redis = redis_client
        self.key_prefix = key_prefix
        self.timeout_seconds = timeout_seconds
        self.blocking_timeout_seconds = blocking_timeout_seconds

    async def _keep_alive(self, lock, key: str) -> None:
        interval = self.timeout_seconds / 3
        while True:
            await asyncio.sleep(interval)
            try:
                await lock.reacquire()
            except (LockError, RedisError) as exc:
                logger.warning(
                    "Turn lock renewal failed",
                    extra={"context": {"key": key, "error": str(exc)}},
                )
                return

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._redis.lock(
            f"{self.key_prefix}lock:{key}",
            timeout=self.timeout_seconds,
            blocking_timeout=self.blocking_timeout_seconds,
        )
        try:
            acquired = await lock.acquire()
        except RedisError as exc:
            raise LockUnavailableError(f"lock backend unavailable for {key}: {exc}") from exc
        if not acquired:
            raise LockUnavailableError(f"timed out waiting for turn lock of {key}")
        renewal = asyncio.create_task(self._keep_alive(lock, key))
        try:
            yield
        finally:
            renewal.cancel()
            try:
                await renewal
            except asyncio.CancelledError:
                pass
            try:
                await lock.release()
            except LockError as exc:
                # Lock expired while the turn was still running.
                logger.warning(
                    "Turn lock released late",
                    extra={"context": {"key": key, "error": str(exc)}},
                )
