"""
Job change feed over Redis pub/sub.

Every committed mutation on ``jobs`` publishes one small JSON message on
the ``jobs`` channel.  Subscribers treat a message purely as "something
changed, re-read": delivery is at-most-once and may arrive before or
after a reader can see the write, so nothing relies on the payload for
correctness.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from src.domain.enums import ChangeEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobChange:
    event: ChangeEvent
    job_id: str
    status: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps(
            {"event": self.event.value, "job_id": self.job_id, "status": self.status}
        )

    @classmethod
    def from_json(cls, raw: str) -> "JobChange":
        data = json.loads(raw)
        return cls(
            event=ChangeEvent(data["event"]),
            job_id=data["job_id"],
            status=data.get("status"),
        )


class ChangeFeed(Protocol):
    async def publish(self, change: JobChange) -> None: ...

    def listen(self) -> AsyncIterator[JobChange]: ...


class RedisChangeFeed:
    def __init__(self, client: aioredis.Redis, channel: str = "jobs"):
        self.redis = client
        self.channel = channel

    async def publish(self, change: JobChange) -> None:
        """Best effort: the write it announces is already committed."""
        try:
            await self.redis.publish(self.channel, change.to_json())
        except RedisError as exc:
            logger.warning("Could not publish %s for job %s: %s",
                           change.event.value, change.job_id, exc)

    async def listen(self) -> AsyncIterator[JobChange]:
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(self.channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    yield JobChange.from_json(message["data"])
                except (ValueError, KeyError):
                    logger.warning("Ignoring malformed change message: %r",
                                   message.get("data"))
        finally:
            await pubsub.unsubscribe(self.channel)
            await pubsub.aclose()
