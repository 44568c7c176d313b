"""
Keyed mutual exclusion for admission and ride creation.

Two providers expose the same ``lock(key)`` async context manager:

* ``RedisLocks`` -- ``DistributedLock`` per key, safe across API processes.
  SET NX EX to acquire (polling until ``wait_seconds`` elapses) and a Lua
  script for atomic check-and-delete on release.
* ``InProcessLocks`` -- one ``asyncio.Lock`` per key, for a single process
  and for tests.

Keys used by the services: ``driver:{id}``, ``request:{id}``, ``ride:{id}``.
Always taken in that order so two operations can never wait on each other.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager

import redis.asyncio as aioredis


class LockNotAcquired(RuntimeError):
    """The lock stayed held by someone else for the whole wait window."""


class DistributedLock:
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(
        self,
        client: aioredis.Redis,
        key: str,
        ttl_seconds: int = 30,
        wait_seconds: float = 0.0,
        retry_interval: float = 0.05,
    ):
        self.redis = client
        self.key = f"lock:{key}"
        self.ttl = ttl_seconds
        self.wait_seconds = wait_seconds
        self.retry_interval = retry_interval
        self.token = str(uuid.uuid4())

    async def acquire(self) -> bool:
        """Try once. Returns True on success."""
        return bool(
            await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
        )

    async def acquire_blocking(self) -> bool:
        """Retry until acquired or ``wait_seconds`` have passed."""
        deadline = time.monotonic() + self.wait_seconds
        while True:
            if await self.acquire():
                return True
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(self.retry_interval)

    async def release(self) -> None:
        """Release only if we still own the lock (atomic via Lua)."""
        await self.redis.eval(self.RELEASE_SCRIPT, 1, self.key, self.token)

    # context-manager support
    async def __aenter__(self):
        acquired = await self.acquire_blocking()
        if not acquired:
            raise LockNotAcquired(f"Could not acquire lock: {self.key}")
        return self

    async def __aexit__(self, *args):
        await self.release()


class RedisLocks:
    def __init__(
        self, client: aioredis.Redis, ttl_seconds: int = 30, wait_seconds: float = 10.0
    ):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.wait_seconds = wait_seconds

    def lock(self, key: str) -> DistributedLock:
        return DistributedLock(
            self.client, key, ttl_seconds=self.ttl_seconds, wait_seconds=self.wait_seconds
        )


class InProcessLocks:
    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @asynccontextmanager
    async def lock(self, key: str):
        async with self._locks[key]:
            yield
