"""
Auth context: the one place that knows about the current session.

The map screen only ever asks `authorized` and may call `sign_out()`.
Session lookup belongs to a provider; this backend ships one that reads
an opaque session user from settings. No credentials are checked here.
"""

import logging
from typing import Optional

from settings import settings

logger = logging.getLogger(__name__)


class SettingsSessionProvider:
    """Session provider backed by `settings.session_user`."""

    def __init__(self, user: Optional[str] = None):
        self._user = settings.session_user if user is None else user

    async def get_session(self) -> Optional[str]:
        return self._user or None

    async def sign_out(self) -> None:
        self._user = ""


class AuthContext:
    """Process-wide session holder with explicit `init()` / `sign_out()`."""

    def __init__(self, provider):
        self._provider = provider
        self._session: Optional[str] = None

    @property
    def authorized(self) -> bool:
        return self._session is not None

    async def init(self) -> None:
        """Query the provider for the current session (app start)."""
        self._session = await self._provider.get_session()
        logger.info("Session %s", "restored" if self.authorized else "absent")

    async def sign_out(self) -> None:
        await self._provider.sign_out()
        self._session = None
