"""
Redis-backed trip session store.

One key per driver (``trip:{driver_id}``) holds the running trip as JSON.
That key doubles as the "one active trip per driver" guard:

* ``begin`` uses SET NX EX, so a second trip cannot be opened while the
  first is still running.
* ``end`` uses a Lua script for an atomic check-and-delete, so a stale
  request for an old job cannot wipe a newer session.

The TTL only reclaims sessions abandoned by a crashed client.
"""

from __future__ import annotations

import json
from typing import Optional, Protocol

import redis.asyncio as aioredis

from src.domain.entities import TripSession

_END_SCRIPT = """
local raw = redis.call("get", KEYS[1])
if not raw then
    return 0
end
if cjson.decode(raw)["job_id"] == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class TripSessionStore(Protocol):
    async def get(self, driver_id: str) -> Optional[TripSession]: ...

    async def begin(self, session: TripSession) -> bool: ...

    async def save(self, session: TripSession) -> None: ...

    async def end(self, driver_id: str, job_id: str) -> bool: ...


class RedisTripSessionStore:
    def __init__(self, client: aioredis.Redis, ttl_seconds: int = 12 * 3600):
        self.redis = client
        self.ttl = ttl_seconds

    @staticmethod
    def key(driver_id: str) -> str:
        return f"trip:{driver_id}"

    async def get(self, driver_id: str) -> Optional[TripSession]:
        raw = await self.redis.get(self.key(driver_id))
        if raw is None:
            return None
        return TripSession.from_dict(json.loads(raw))

    async def begin(self, session: TripSession) -> bool:
        """Open a session. Returns False if the driver already has one."""
        return bool(
            await self.redis.set(
                self.key(session.driver_id),
                json.dumps(session.to_dict()),
                nx=True,
                ex=self.ttl,
            )
        )

    async def save(self, session: TripSession) -> None:
        """Persist tracker progress for an already-open session."""
        await self.redis.set(
            self.key(session.driver_id),
            json.dumps(session.to_dict()),
            xx=True,
            ex=self.ttl,
        )

    async def end(self, driver_id: str, job_id: str) -> bool:
        """Close the session only if it still belongs to *job_id*."""
        return bool(
            await self.redis.eval(_END_SCRIPT, 1, self.key(driver_id), job_id)
        )
