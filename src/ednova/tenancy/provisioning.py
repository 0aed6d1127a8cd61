"""
Tenant database provisioning.

SQLite creates a tenant's file on first connection. PostgreSQL needs the
database to exist first, so it is created through an AUTOCOMMIT connection
to a maintenance database before the tenant engine connects.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import structlog
from sqlalchemy import text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ProgrammingError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

logger = structlog.get_logger()

EngineFactory = Callable[..., AsyncEngine]


def needs_provisioning(url: str | URL) -> bool:
    return make_url(url).get_backend_name() == "postgresql"


async def ensure_database(
    url: str | URL,
    *,
    maintenance_database: str = "postgres",
    engine_factory: EngineFactory = create_async_engine,
) -> bool:
    """Create the database named in ``url`` unless it exists. Returns True if it was created.

    URLs of backends that create storage implicitly are left alone.
    """
    target = make_url(url)
    if not needs_provisioning(target) or not target.database:
        return False

    admin = engine_factory(
        target.set(database=maintenance_database),
        isolation_level="AUTOCOMMIT",
        poolclass=NullPool,
    )
    try:
        async with admin.connect() as conn:
            if await _database_exists(conn, target.database):
                return False
            quoted = conn.dialect.identifier_preparer.quote(target.database)
            try:
                await conn.execute(text(f"CREATE DATABASE {quoted}"))
            except ProgrammingError:
                # Another process may have created it in the meantime.
                if await _database_exists(conn, target.database):
                    return False
                raise
    finally:
        await admin.dispose()

    logger.info("tenant_database_created", database=target.database)
    return True


async def _database_exists(conn: Any, name: str) -> bool:  # noqa: ANN401
    result = await conn.execute(text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": name})
    return result.scalar() is not None
