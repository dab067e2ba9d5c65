"""
Database engine and session management for tenant-isolated PostgreSQL.

This module owns everything that talks to the PostgreSQL server below the level
of a single tenant: building connection URLs, building pooled async engines for
a named database, and the administrative CREATE/DROP DATABASE statements that
run against the maintenance database.

Key Features:
    - One pooled AsyncEngine per database (the "pool" handed out by the cache)
    - Connect and statement timeouts so no call hangs indefinitely
    - Idempotent database creation that treats concurrent "already exists" as success

Connection Pooling:
    Pool size, overflow, timeout and recycle come from BaseServiceSettings
    (DATABASE_POOL_SIZE etc). Pre-ping is always enabled.

Usage:
    ```python
    from ftth_common.database.session import create_pool_engine

    engine = create_pool_engine("tenant_acme")
    async with engine.connect() as connection:
        result = await connection.execute(text("SELECT COUNT(*) FROM users"))
    ```
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from loguru import logger
from sqlalchemy import text
from sqlalchemy.engine import URL
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ftth_common.config import BaseServiceSettings, get_settings
from ftth_common.database.tenant_naming import is_valid_database_name
from ftth_common.exceptions import ConnectionFailure, InvalidDatabaseName

# PostgreSQL SQLSTATE codes that mean "somebody else already created it"
DUPLICATE_DATABASE = "42P04"
DUPLICATE_TABLE = "42P07"
DUPLICATE_OBJECT = "42710"
UNIQUE_VIOLATION = "23505"
ALREADY_EXISTS_CODES = {DUPLICATE_DATABASE, DUPLICATE_TABLE, DUPLICATE_OBJECT, UNIQUE_VIOLATION}


def create_sqlalchemy_url(
    database_name: str, settings: BaseServiceSettings | None = None
) -> URL:
    """
    Create a SQLAlchemy asyncpg URL for ``database_name``.

    Args:
        database_name: Name of the database to connect to. For tenants use
            derive_database_name(domain); for CREATE/DROP DATABASE use the
            POSTGRES_ADMIN_DATABASE setting.
        settings: Settings to read the server credentials from. Defaults to
            get_settings().

    Raises:
        ValueError: If database_name is empty.
    """
    if not database_name:
        msg = (
            "database_name is required for tenant-isolated architecture. "
            "Use derive_database_name(domain) for tenant databases."
        )
        raise ValueError(msg)

    settings = settings or get_settings()
    return URL.create(
        drivername="postgresql+asyncpg",
        username=settings.POSTGRES_USER,
        password=settings.POSTGRES_PASSWORD or None,
        host=settings.POSTGRES_HOST,
        port=settings.POSTGRES_PORT,
        database=database_name,
    )


def create_pool_engine(
    database_name: str,
    settings: BaseServiceSettings | None = None,
    service_name: str | None = None,
) -> AsyncEngine:
    """
    Build a pooled async engine bound to one database.

    The engine does not connect until first use; callers that need to know the
    database is reachable should await ping_engine() on it.
    """
    settings = settings or get_settings()
    url = create_sqlalchemy_url(database_name, settings)

    return create_async_engine(
        url,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_timeout=settings.DATABASE_POOL_TIMEOUT,
        pool_recycle=settings.DATABASE_POOL_RECYCLE,
        pool_pre_ping=True,
        echo=settings.DATABASE_ECHO,
        connect_args={
            "timeout": settings.DATABASE_CONNECT_TIMEOUT,
            "server_settings": {
                "application_name": service_name or settings.SERVICE_NAME,
                "statement_timeout": "30s",
                "jit": "off",
            },
        },
    )


async def ping_engine(engine: AsyncEngine) -> None:
    """
    Run ``SELECT 1`` on a fresh connection from ``engine``.

    Raises:
        ConnectionFailure: If the database cannot be reached.
    """
    database_name = engine.url.database or "unknown"
    try:
        async with engine.connect() as connection:
            await connection.execute(text("SELECT 1"))
    except (DBAPIError, OSError, TimeoutError) as e:
        logger.warning(f"Connection probe failed for database '{database_name}': {e}")
        raise ConnectionFailure(database_name, internal_error=e) from e


def is_already_exists_error(error: BaseException) -> bool:
    """
    Tell whether a driver error means the object was created concurrently.

    Checks the SQLSTATE of the underlying driver error and falls back to the
    message text, the same way concurrent CREATE DATABASE races are detected
    elsewhere in the provisioning code.
    """
    orig = getattr(error, "orig", None) or error
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code in ALREADY_EXISTS_CODES:
        return True
    message = str(error).lower()
    return DUPLICATE_DATABASE.lower() in message or "already exists" in message


@asynccontextmanager
async def admin_connection(
    settings: BaseServiceSettings | None = None,
) -> AsyncIterator[Any]:
    """
    Yield an AUTOCOMMIT connection to the maintenance database.

    CREATE DATABASE cannot run inside a transaction block, hence AUTOCOMMIT.
    The engine is disposed on exit.
    """
    settings = settings or get_settings()
    engine = create_async_engine(
        create_sqlalchemy_url(settings.POSTGRES_ADMIN_DATABASE, settings),
        isolation_level="AUTOCOMMIT",
        connect_args={"timeout": settings.DATABASE_CONNECT_TIMEOUT},
    )
    try:
        async with engine.connect() as connection:
            yield connection
    except (OSError, TimeoutError) as e:
        raise ConnectionFailure(settings.POSTGRES_ADMIN_DATABASE, internal_error=e) from e
    finally:
        await engine.dispose()


def _require_valid_name(database_name: str) -> None:
    # Identifiers cannot be bound as parameters, so they are validated instead
    if not is_valid_database_name(database_name):
        raise InvalidDatabaseName(database_name, "Refusing unsafe database name")


async def create_database(
    database_name: str, settings: BaseServiceSettings | None = None
) -> bool:
    """
    Create a database if it doesn't exist.

    Returns:
        True if this call created the database, False if it already existed
        (including when another process created it concurrently).
    """
    _require_valid_name(database_name)

    async with admin_connection(settings) as connection:
        result = await connection.execute(
            text("SELECT 1 FROM pg_database WHERE datname = :database_name"),
            {"database_name": database_name},
        )
        if result.first() is not None:
            logger.info(f"Database '{database_name}' already exists.")
            return False

        logger.info(f"Creating database '{database_name}'...")
        try:
            await connection.execute(text(f'CREATE DATABASE "{database_name}"'))
        except DBAPIError as e:
            if is_already_exists_error(e):
                logger.info(
                    f"Database '{database_name}' already exists (concurrent creation detected)."
                )
                return False
            raise

    logger.info(f"Database '{database_name}' created successfully.")
    return True


async def drop_database(
    database_name: str, settings: BaseServiceSettings | None = None
) -> None:
    """
    Drop a database after terminating its other sessions.

    Used as compensating cleanup when schema creation fails and by operators
    cleaning up orphaned databases. Missing databases are ignored.
    """
    _require_valid_name(database_name)

    async with admin_connection(settings) as connection:
        logger.warning(f"Dropping database '{database_name}'...")
        await connection.execute(
            text("""
                SELECT pg_terminate_backend(pg_stat_activity.pid)
                FROM pg_stat_activity
                WHERE pg_stat_activity.datname = :database_name
                AND pid <> pg_backend_pid()
            """),
            {"database_name": database_name},
        )
        await connection.execute(text(f'DROP DATABASE IF EXISTS "{database_name}"'))
    logger.info(f"Database '{database_name}' dropped.")

