"""
Live job board.

Keeps one actor's job list in step with the change feed: the list is read
once up front and re-read after every change message.  The message body
is ignored; the query is the source of truth.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.domain.entities import Actor
from src.infrastructure.change_feed import ChangeFeed
from src.infrastructure.models import JobModel
from src.infrastructure.repositories import JobRepository

logger = logging.getLogger(__name__)


class JobBoard:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], actor: Actor):
        self.session_factory = session_factory
        self.actor = actor
        self.jobs: list[JobModel] = []

    async def refresh(self) -> list[JobModel]:
        async with self.session_factory() as session:
            repo = JobRepository(session)
            if self.actor.is_dispatcher:
                self.jobs = await repo.list_all()
            else:
                self.jobs = await repo.list_for_driver(self.actor.id)
        return self.jobs

    async def follow(self, feed: ChangeFeed) -> AsyncIterator[list[JobModel]]:
        """Yield the current list, then a fresh one after each change."""
        yield await self.refresh()
        async for change in feed.listen():
            logger.debug("Board for %s refreshing after %s on %s",
                         self.actor.id, change.event.value, change.job_id)
            yield await self.refresh()
