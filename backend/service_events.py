"""
Service / facade layer: one map screen lifetime.

`MapScreen` wires the live-sync pieces together and is the only object
the HTTP layer talks to. It is intentionally free of SQL; the repo and
feed are handed in.

Lifetime:
1. `mount()` — liveness on, render gate armed, change feed subscribed,
   forced initial fetch.
2. Focus/blur signals, feed notifications, taps and wizard sessions.
3. `unmount()` — liveness off, pending fetches cancelled, subscription
   released, replica discarded. Nothing mutates state after this.

Example usage:
    screen = MapScreen(EventRepo(), EventFeed())
    await screen.mount()
    screen.on_focus()
    ...
    await screen.unmount()
"""

import logging
from collections.abc import Callable
from contextlib import AsyncExitStack
from typing import List, Optional, Tuple

from feed import FeedSubscriber
from markers import Marker, build_markers
from models import Coordinates, Event, Sport
from notices import NoticeBoard
from refresh import RefreshController
from render_gate import RenderGate
from replica import ReplicaStore
from repo_events import EventFeed, EventRepo
from settings import settings
from wizard import CreateEventWizard

logger = logging.getLogger(__name__)


class MapScreen:
    """Replica + refresh policy + feed + render gate + creation flow."""

    def __init__(
        self,
        repo: EventRepo,
        feed: EventFeed,
        notices: Optional[NoticeBoard] = None,
        tracking_delay: Optional[float] = None,
        wizard_options: Optional[dict] = None,
    ):
        self.repo = repo
        self.notices = notices or NoticeBoard()
        self.replica = ReplicaStore()
        self.alive = False
        self.refresh = RefreshController(repo, self.replica, self.notices, is_alive=self._is_alive)
        self.subscriber = FeedSubscriber(feed, self.notices)
        self.gate = RenderGate(
            settings.tracking_freeze_delay if tracking_delay is None else tracking_delay
        )
        self.user_location = self.default_location()
        self.pending_location: Optional[Coordinates] = None
        self.wizard: Optional[CreateEventWizard] = None
        self.wizard_options = wizard_options or {}
        self._created_listeners: List[Callable[[Event], None]] = []
        self._stack: Optional[AsyncExitStack] = None
        self._mounted = False

    @staticmethod
    def default_location() -> Coordinates:
        return Coordinates(latitude=settings.default_latitude, longitude=settings.default_longitude)

    # lifetime

    async def mount(self) -> None:
        if self._mounted:
            raise RuntimeError("A map screen can only be mounted once")
        self._mounted = True
        self.alive = True
        self.gate.start()
        self._stack = AsyncExitStack()
        await self._stack.enter_async_context(self.subscriber)
        await self.subscriber.start(self._on_feed_change)
        # Nothing cached yet, so the first fetch ignores focus and in-flight state.
        await self.refresh.fetch(force=True)

    async def unmount(self) -> None:
        if not self.alive:
            return
        self.alive = False
        self.refresh.cancel()
        self.gate.cancel()
        try:
            if self._stack is not None:
                await self._stack.aclose()
        finally:
            self.wizard = None
            self.pending_location = None
            self.replica.clear()

    def _is_alive(self) -> bool:
        return self.alive

    # focus, blur and feed signals

    def on_focus(self):
        if not self.alive:
            return None
        return self.refresh.on_focus()

    def on_blur(self) -> None:
        self.refresh.on_blur()

    def _on_feed_change(self) -> None:
        if self.alive:
            self.refresh.on_feed_notification()

    def set_user_location(self, coordinates: Optional[Coordinates]) -> Coordinates:
        """Center on the user; None means permission denied or lookup failed."""
        if coordinates is None:
            self.notices.post(
                "Location unavailable",
                "Unable to retrieve your location. Using default location.",
                kind="warning",
                key="location",
            )
            coordinates = self.default_location()
        self.user_location = coordinates
        return coordinates

    # rendering

    @property
    def tracking_enabled(self) -> bool:
        return self.gate.tracking_enabled

    def snapshot(self) -> Tuple[Event, ...]:
        return self.replica.snapshot()

    def markers(self, sport: Optional[Sport] = None) -> List[Marker]:
        return build_markers(self.replica.snapshot(), self.tracking_enabled, sport)

    # tap, popup, wizard

    def tap(self, coordinates: Coordinates) -> Coordinates:
        """Offer to create an event at `coordinates`."""
        if self.wizard is not None:
            raise RuntimeError("Finish or close the current event first")
        self.pending_location = coordinates
        return coordinates

    def dismiss_pending(self) -> None:
        self.pending_location = None

    def confirm_pending(self) -> CreateEventWizard:
        if self.pending_location is None:
            raise RuntimeError("No location selected")
        return self.open_wizard(self.pending_location)

    def open_wizard(self, coordinates: Coordinates) -> CreateEventWizard:
        if not self.alive:
            raise RuntimeError("Map screen is not mounted")
        if self.wizard is not None:
            raise RuntimeError("An event is already being created")
        self.wizard = CreateEventWizard(
            self.repo,
            self.replica,
            self.notices,
            coordinates,
            on_close=self._on_wizard_closed,
            on_event_created=self._on_event_created,
            is_alive=self._is_alive,
            **self.wizard_options,
        )
        return self.wizard

    def add_event_created_listener(self, listener: Callable[[Event], None]) -> None:
        self._created_listeners.append(listener)

    def _on_event_created(self, event: Event) -> None:
        for listener in self._created_listeners:
            listener(event)

    def _on_wizard_closed(self, reason: str) -> None:
        logger.debug("Create-event flow closed (%s)", reason)
        self.wizard = None
        self.pending_location = None
