"""
Replica store: the map screen's local copy of the server's event set.

Two writers feed it. Fetches swap the whole set (`replace_all`); the
creation wizard adds the row it just inserted (`append`) so the creator
sees it before the next refresh. Ids are unique at all times: appending
an id that is already present is a no-op, which is what keeps the
creator's own event from being drawn twice when a refetch races the
append.

The store keeps no order. `snapshot()` returns an immutable tuple;
display ordering is `markers.build_markers`' job.
"""

from collections.abc import Callable, Iterable
from typing import Dict, Optional, Tuple

from models import Event


class ReplicaStore:
    """In-memory mapping of event id -> `Event`.

    `on_change` (optional) is called after every mutation that changed the
    set, with no arguments. The store has no timers and never calls back
    into I/O.
    """

    def __init__(self, on_change: Optional[Callable[[], None]] = None):
        self._events: Dict[str, Event] = {}
        self.revision = 0
        self.on_change = on_change

    def replace_all(self, events: Iterable[Event]) -> None:
        """Atomically swap the current set for `events`.

        Duplicate ids inside `events` collapse to the last occurrence.
        """
        self._events = {e.id: e for e in events}
        self._changed()

    def append(self, event: Event) -> bool:
        """Insert `event` if its id is new. Returns True if it was inserted."""
        if event.id in self._events:
            return False
        self._events[event.id] = event
        self._changed()
        return True

    def snapshot(self) -> Tuple[Event, ...]:
        return tuple(self._events.values())

    def get(self, event_id: str) -> Optional[Event]:
        return self._events.get(event_id)

    def clear(self) -> None:
        if self._events:
            self._events = {}
            self._changed()

    def __len__(self) -> int:
        return len(self._events)

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._events

    def _changed(self) -> None:
        self.revision += 1
        if self.on_change is not None:
            self.on_change()
