"""
Focus-gated refresh controller.

Decides when the replica is refetched from the entity store:

- every focus transition forces a fetch, even if one is in flight;
- a change-feed notification fetches only while focused, and is
  coalesced into a fetch that is already in flight;
- off-screen notifications are dropped; the next focus catches up.

A failed fetch leaves the replica untouched and posts a notice. When
forced fetches overlap, the result of the most recently issued one wins
and older results that arrive late are discarded.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Optional, Set

from notices import NoticeBoard
from replica import ReplicaStore
from repo_events import EventRepo

logger = logging.getLogger(__name__)

FETCH_NOTICE_KEY = "fetch"


class RefreshController:
    def __init__(
        self,
        repo: EventRepo,
        replica: ReplicaStore,
        notices: NoticeBoard,
        is_alive: Callable[[], bool] = lambda: True,
    ):
        self.repo = repo
        self.replica = replica
        self.notices = notices
        self.is_alive = is_alive
        self.focused = False
        self.fetch_count = 0
        self._in_flight = 0
        self._issued = 0
        self._applied = 0
        self._tasks: Set[asyncio.Task] = set()

    @property
    def last_fetch_in_flight(self) -> bool:
        return self._in_flight > 0

    def on_focus(self) -> Optional[asyncio.Task]:
        self.focused = True
        return self._schedule(force=True)

    def on_blur(self) -> None:
        self.focused = False

    def on_feed_notification(self) -> Optional[asyncio.Task]:
        if not self.focused:
            logger.debug("Screen not focused; dropping change notification")
            return None
        return self._schedule(force=False)

    async def fetch(self, force: bool = False) -> bool:
        """Fetch all events now. Returns True if the replica was replaced.

        Skipped (returns False) when a fetch is in flight and `force` is
        False.
        """
        seq = self._begin(force)
        if seq is None:
            return False
        return await self._run(seq)

    def cancel(self) -> None:
        for task in list(self._tasks):
            task.cancel()

    async def drain(self) -> None:
        """Wait for every scheduled fetch to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _schedule(self, force: bool) -> Optional[asyncio.Task]:
        seq = self._begin(force)
        if seq is None:
            return None
        task = asyncio.create_task(self._run(seq))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _begin(self, force: bool) -> Optional[int]:
        if self.last_fetch_in_flight and not force:
            logger.debug("Fetch already in flight; coalescing")
            return None
        self._in_flight += 1
        self._issued += 1
        self.fetch_count += 1
        return self._issued

    async def _run(self, seq: int) -> bool:
        try:
            events = await self.repo.query_all()
        except Exception:
            if self.is_alive() and seq > self._applied:
                logger.warning("Fetching events failed; keeping %d cached", len(self.replica), exc_info=True)
                self.notices.post(
                    "Error",
                    "Unable to load events. Showing the last known events.",
                    key=FETCH_NOTICE_KEY,
                )
            return False
        finally:
            self._in_flight -= 1

        if not self.is_alive():
            return False
        if seq < self._applied:
            logger.debug("Discarding fetch #%d; #%d already applied", seq, self._applied)
            return False
        self._applied = seq
        self.replica.replace_all(events)
        self.notices.dismiss_key(FETCH_NOTICE_KEY)
        return True
