"""
Database connection helpers.

This module centralizes how connections are created. Scripts use the
blocking `get_conn()`; the running map screen lives on an asyncio loop
and uses `get_async_conn()` so a slow query never stalls other work.

Usage:
    from db import get_async_conn
    async with await get_async_conn() as conn:
        async with conn.cursor() as cur:
            await cur.execute("SELECT 1;")

Note: switching to a connection pool will change these helpers only —
repository code should remain unchanged.
"""

import psycopg
from settings import settings


def get_conn():
    """Return a new blocking psycopg connection using `settings.db_url`."""

    return psycopg.connect(settings.db_url, connect_timeout=5)


async def get_async_conn(**kwargs) -> psycopg.AsyncConnection:
    """Open a new async psycopg connection using `settings.db_url`.

    Extra keyword arguments are passed through to
    `AsyncConnection.connect` (the change feed asks for `autocommit=True`
    so its LISTEN takes effect immediately). We keep the short
    `connect_timeout` so a dead database surfaces as an error instead
    of a hang.
    """

    return await psycopg.AsyncConnection.connect(
        settings.db_url, connect_timeout=5, **kwargs
    )
