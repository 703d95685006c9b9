"""
User-visible, non-fatal notices.

Every failure the map screen recovers from (a fetch that failed, a feed
that could not be subscribed, a rejected insert) ends up here instead of
propagating. The HTTP surface lists them; the client shows and dismisses
them.
"""

import itertools
from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass(frozen=True)
class Notice:
    id: int
    title: str
    message: str
    kind: str = "error"
    key: Optional[str] = None


class NoticeBoard:
    """Ordered collection of active notices.

    A notice posted with a `key` replaces any active notice with the same
    key, so a repeating failure shows one notice rather than a stack.
    """

    def __init__(self):
        self._ids = itertools.count(1)
        self._active: Dict[int, Notice] = {}

    def post(self, title: str, message: str, kind: str = "error", key: Optional[str] = None) -> Notice:
        if key is not None:
            self.dismiss_key(key)
        notice = Notice(next(self._ids), title, message, kind, key)
        self._active[notice.id] = notice
        return notice

    def dismiss(self, notice_id: int) -> bool:
        return self._active.pop(notice_id, None) is not None

    def dismiss_key(self, key: str) -> None:
        for notice_id in [n.id for n in self._active.values() if n.key == key]:
            del self._active[notice_id]

    def active(self) -> List[Notice]:
        return list(self._active.values())
