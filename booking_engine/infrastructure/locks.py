"""
Booking locks.

The booking service holds a lock per calendar date while it checks for
conflicts and inserts the appointment, closing the check-then-act window
between concurrent requests for the same slot.

* ``DistributedLock`` -- Redis ``SET NX EX`` to acquire and a Lua script
  for atomic check-and-delete on release.  Safe across API processes.
* ``LocalLock`` -- ``asyncio.Lock`` registry for a single process
  (development, tests).

``acquire(timeout)`` waits up to *timeout* seconds for a holder to let
go; ``timeout=0`` makes a single attempt.  Both are handed out by a
provider so the service never touches a module-level lock table.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import Protocol

import redis.asyncio as aioredis

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

RETRY_INTERVAL_SECONDS = 0.05


class BookingLock(Protocol):
    key: str

    async def acquire(self, timeout: float = 0.0) -> bool: ...

    async def release(self) -> None: ...


class LockProvider(Protocol):
    def lock(self, key: str, ttl_seconds: int) -> BookingLock: ...


class DistributedLock:
    def __init__(
        self, client: aioredis.Redis, key: str, ttl_seconds: int = 30
    ):
        self.redis = client
        self.key = f"lock:{key}"
        self.ttl = ttl_seconds
        self.token = str(uuid.uuid4())

    async def acquire(self, timeout: float = 0.0) -> bool:
        """Poll ``SET NX`` until it succeeds or *timeout* runs out."""
        deadline = time.monotonic() + timeout
        while True:
            if await self.redis.set(self.key, self.token, nx=True, ex=self.ttl):
                return True
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(RETRY_INTERVAL_SECONDS)

    async def release(self) -> None:
        """Release only if we still own the lock (atomic via Lua)."""
        await self.redis.eval(_RELEASE_SCRIPT, 1, self.key, self.token)


class RedisLockProvider:
    def __init__(self, client: aioredis.Redis):
        self.client = client

    def lock(self, key: str, ttl_seconds: int) -> DistributedLock:
        return DistributedLock(self.client, key, ttl_seconds=ttl_seconds)


class LocalLock:
    """In-process lock.  The TTL is ignored: release happens in ``finally``."""

    def __init__(self, inner: asyncio.Lock, key: str):
        self._inner = inner
        self.key = f"lock:{key}"
        self._held = False

    async def acquire(self, timeout: float = 0.0) -> bool:
        if timeout <= 0:
            if self._inner.locked():
                return False
            await self._inner.acquire()
        else:
            try:
                await asyncio.wait_for(self._inner.acquire(), timeout)
            except asyncio.TimeoutError:
                return False
        self._held = True
        return True

    async def release(self) -> None:
        if self._held:
            self._held = False
            self._inner.release()


class LocalLockRegistry:
    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, key: str, ttl_seconds: int = 30) -> LocalLock:
        inner = self._locks.setdefault(key, asyncio.Lock())
        return LocalLock(inner, key)
