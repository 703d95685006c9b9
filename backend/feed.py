"""
Feed subscriber: one change-feed subscription per screen lifetime.

The subscriber never interprets notifications. Any change to the events
resource means "something changed" and the callback (the refresh
controller) responds by refetching the whole set.

If the subscription cannot be established the failure is logged and a
single notice is posted; there is no retry here. The screen still
refreshes on every focus, so it stays eventually consistent without the
push channel.
"""

import logging
from collections.abc import Callable

from notices import NoticeBoard
from repo_events import EventFeed

logger = logging.getLogger(__name__)

FEED_NOTICE_KEY = "feed"


class FeedSubscriber:
    """Owns the subscription handle returned by the change feed.

    Usable as an async context manager; `stop()` runs on every exit path.
    """

    def __init__(self, feed: EventFeed, notices: NoticeBoard):
        self.feed = feed
        self.notices = notices
        self._subscription = None
        self._started = False

    @property
    def active(self) -> bool:
        return self._subscription is not None

    async def start(self, on_change: Callable[[], None]) -> bool:
        """Subscribe once. Returns False if the feed could not be reached."""

        if self._started:
            raise RuntimeError("Feed subscriber already started for this screen")
        self._started = True
        try:
            self._subscription = await self.feed.subscribe(on_change)
        except Exception:
            logger.warning("Could not subscribe to event changes", exc_info=True)
            self.notices.post(
                "Live updates unavailable",
                "Events will refresh when you return to the map.",
                kind="warning",
                key=FEED_NOTICE_KEY,
            )
            return False
        return True

    async def stop(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.close()

    async def __aenter__(self) -> "FeedSubscriber":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
