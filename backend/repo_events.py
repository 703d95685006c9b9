"""
Repository: SQL operations and change feed for `events`.

This file contains only DB interaction code. It maps Pydantic models
to SQL parameters and converts DB rows back into `Event` models. Keep
business rules out of this module.

Important notes:
- All calls are async (psycopg `AsyncConnection`) because the map screen
  runs on a single event loop.
- `insert_event` commits before returning; callers expect the row to be
  durable (and the NOTIFY sent) once the method returns.
- The change feed is plain Postgres LISTEN/NOTIFY. The trigger installed
  by `scripts/create_events_table.py` notifies `settings.events_channel`
  on every INSERT/UPDATE/DELETE; the payload is ignored by consumers.
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import List

import psycopg
from psycopg import errors, sql

from db import get_async_conn
from models import Event, EventIn
from settings import settings

logger = logging.getLogger(__name__)

EVENT_COLUMNS = (
    "id, name, sport, description, datetime, max_players, latitude, longitude, created_at"
)


class StoreError(RuntimeError):
    """The entity store or its change feed failed."""


class StoreAuthorizationError(StoreError, PermissionError):
    """The store rejected the call on permission/policy grounds (SQLSTATE 42501)."""


def _row_to_event(r) -> Event:
    return Event(
        id=str(r[0]),
        name=r[1],
        sport=r[2],
        description=r[3] or "",
        datetime=r[4],
        max_players=r[5],
        latitude=r[6],
        longitude=r[7],
        created_at=r[8],
    )


def _wrap(exc: psycopg.Error, action: str) -> StoreError:
    if isinstance(exc, errors.InsufficientPrivilege):
        return StoreAuthorizationError(f"{action} rejected by store policy: {exc}")
    return StoreError(f"{action} failed: {exc}")


class EventRepo:
    """DB access only. No business logic here.

    Responsibilities:
    - Map `EventIn` -> SQL parameters
    - Convert rows to `Event`
    - Translate psycopg errors into `StoreError` / `StoreAuthorizationError`
    """

    async def query_all(self) -> List[Event]:
        """Return every stored event. No ordering is promised."""

        try:
            async with await get_async_conn() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(f"SELECT {EVENT_COLUMNS} FROM events")
                    rows = await cur.fetchall()
        except psycopg.Error as e:
            raise _wrap(e, "Query") from e
        return [_row_to_event(r) for r in rows]

    async def insert_event(self, event: EventIn) -> Event:
        """Insert one event and return the stored row.

        `id` and `created_at` come from the table defaults.
        """

        try:
            async with await get_async_conn() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        "INSERT INTO events (name, sport, description, datetime, max_players, latitude, longitude) "
                        f"VALUES (%s, %s, %s, %s, %s, %s, %s) RETURNING {EVENT_COLUMNS}",
                        (
                            event.name,
                            event.sport.value,
                            event.description,
                            event.starts_at,
                            event.max_players,
                            event.latitude,
                            event.longitude,
                        ),
                    )
                    row = await cur.fetchone()
                await conn.commit()
        except psycopg.Error as e:
            raise _wrap(e, "Insert") from e
        return _row_to_event(row)

    async def ping(self) -> None:
        """Lightweight DB health check. Raises on error."""

        async with await get_async_conn() as conn:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1;")


class FeedSubscription:
    """One live LISTEN on a dedicated connection.

    A background task drains `conn.notifies()` and calls `on_change` for
    every notification. `close()` stops the task and closes the
    connection; it is safe to call more than once.
    """

    def __init__(self, conn: psycopg.AsyncConnection, on_change: Callable[[], None]):
        self._conn = conn
        self._on_change = on_change
        self._task = asyncio.create_task(self._pump())
        self.closed = False

    async def _pump(self) -> None:
        try:
            async for _notify in self._conn.notifies():
                self._on_change()
        except psycopg.Error:
            # Not reconnected here.
            logger.warning("Event change feed connection lost", exc_info=True)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        await self._conn.close()


class EventFeed:
    """Change feed for the `events` table."""

    def __init__(self, channel: str | None = None):
        self.channel = channel or settings.events_channel

    async def subscribe(self, on_change: Callable[[], None]) -> FeedSubscription:
        """LISTEN on the events channel. Raises `StoreError` if that fails."""

        try:
            conn = await get_async_conn(autocommit=True)
        except psycopg.Error as e:
            raise _wrap(e, "Subscribe") from e
        try:
            await conn.execute(sql.SQL("LISTEN {}").format(sql.Identifier(self.channel)))
        except psycopg.Error as e:
            await conn.close()
            raise _wrap(e, "Subscribe") from e
        logger.info("Listening for event changes on %r", self.channel)
        return FeedSubscription(conn, on_change)
