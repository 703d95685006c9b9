"""
Render-optimization gate.

Right after mount the marker set and the map region are still settling,
so markers are allowed to re-measure (`tracking_enabled`). After a short
delay the flag is switched off for good; later store updates do not turn
it back on. This is a rendering-cost hint only.
"""

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class RenderGate:
    def __init__(self, delay: float = 1.0):
        self.delay = delay
        self.tracking_enabled = True
        self.freeze_count = 0
        self._handle: Optional[asyncio.TimerHandle] = None

    def start(self) -> None:
        """Arm the freeze timer on the running loop. Call once at mount."""
        if self._handle is not None or self.freeze_count:
            return
        self.tracking_enabled = True
        self._handle = asyncio.get_running_loop().call_later(self.delay, self._freeze)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _freeze(self) -> None:
        self._handle = None
        if not self.tracking_enabled:
            return
        self.tracking_enabled = False
        self.freeze_count += 1
        logger.debug("Marker view tracking frozen after %.2fs", self.delay)
