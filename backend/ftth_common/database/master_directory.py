"""
Master tenant directory.

The master database (MASTER_DATABASE_NAME, default ``ftth_master``) holds a
single table, ``tenant_directory``, mapping each owner username to its domain
and database. It is the only database whose location is known up front; every
tenant database is found through it.

Initialization is idempotent and race-tolerant. Several processes may start at
once against an empty server: whichever loses the CREATE DATABASE or CREATE
TABLE race sees an "already exists" error, which counts as success.

Usage:
    ```python
    directory = MasterDirectory(settings)
    await directory.ensure_initialized()
    record = await directory.lookup_by_domain("acme")
    ```
"""

import asyncio
from collections.abc import Sequence
from typing import Any

from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine

from ftth_common.config import BaseServiceSettings, get_settings
from ftth_common.database.session import (
    create_database,
    create_pool_engine,
    is_already_exists_error,
    ping_engine,
)
from ftth_common.exceptions import ConnectionFailure, TenantAlreadyExists
from ftth_common.models.records import TenantRecord
from ftth_common.models.schema import create_master_schema

DIRECTORY_COLUMNS = (
    "id, username, domain, database_name, agent_name, company_name, "
    "governorate, region, phone, email, is_active, created_at, updated_at"
)

INSERTABLE_FIELDS = (
    "username",
    "domain",
    "database_name",
    "agent_name",
    "company_name",
    "governorate",
    "region",
    "phone",
    "email",
    "is_active",
)


class MasterDirectory:
    """Read/write access to the tenant directory in the master database."""

    def __init__(
        self,
        settings: BaseServiceSettings | None = None,
        engine: AsyncEngine | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.database_name = self.settings.MASTER_DATABASE_NAME
        self._engine = engine
        self._init_lock = asyncio.Lock()
        self._initialized = False

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_pool_engine(self.database_name, self.settings)
        return self._engine

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def ensure_initialized(self) -> None:
        """
        Create the master database and the tenant_directory table if missing.

        Safe to call repeatedly and concurrently. Only the first successful call
        does any work in this process; other processes racing on the same server
        are handled by treating "already exists" as success.
        """
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return

            logger.info(f"Initializing master directory in '{self.database_name}'...")
            try:
                await create_database(self.database_name, self.settings)
                await create_master_schema(self.database_name, self.settings)
            except (OperationalError, InterfaceError, OSError, TimeoutError) as e:
                if not is_already_exists_error(e):
                    raise ConnectionFailure(self.database_name, internal_error=e) from e
                logger.info("Master directory initialized concurrently by another process.")

            self._initialized = True
            logger.info("Master directory ready.")

    async def _fetch(self, query: str, params: dict[str, Any] | None = None) -> Sequence[Any]:
        try:
            async with self.engine.connect() as connection:
                result = await connection.execute(text(query), params or {})
                return result.fetchall()
        except (OperationalError, InterfaceError, OSError, TimeoutError) as e:
            raise ConnectionFailure(self.database_name, internal_error=e) from e

    async def lookup_by_username(self, username: str) -> TenantRecord | None:
        rows = await self._fetch(
            f"SELECT {DIRECTORY_COLUMNS} FROM tenant_directory "
            "WHERE username = :username LIMIT 1",
            {"username": username},
        )
        return TenantRecord.model_validate(dict(rows[0]._mapping)) if rows else None

    async def lookup_by_domain(self, domain: str) -> TenantRecord | None:
        """Return the tenant owning ``domain`` (case-insensitive), or None."""
        rows = await self._fetch(
            f"SELECT {DIRECTORY_COLUMNS} FROM tenant_directory "
            "WHERE domain = :domain ORDER BY id LIMIT 1",
            {"domain": domain.lower()},
        )
        return TenantRecord.model_validate(dict(rows[0]._mapping)) if rows else None

    async def lookup_by_database_name(self, database_name: str) -> TenantRecord | None:
        """Return the tenant whose database is ``database_name``, active or not."""
        rows = await self._fetch(
            f"SELECT {DIRECTORY_COLUMNS} FROM tenant_directory "
            "WHERE database_name = :database_name LIMIT 1",
            {"database_name": database_name},
        )
        return TenantRecord.model_validate(dict(rows[0]._mapping)) if rows else None

    async def list_active_tenants(self) -> list[TenantRecord]:
        """
        Return every active tenant ordered by id.

        The order is stable for a given snapshot of the directory, which makes
        cross-tenant scans deterministic.
        """
        rows = await self._fetch(
            f"SELECT {DIRECTORY_COLUMNS} FROM tenant_directory "
            "WHERE is_active = TRUE ORDER BY id"
        )
        return [TenantRecord.model_validate(dict(row._mapping)) for row in rows]

    async def insert_tenant(self, **fields: Any) -> TenantRecord:
        """
        Insert a directory row and return it.

        Args:
            **fields: Columns of tenant_directory. ``username``, ``domain`` and
                ``database_name`` are required; unknown keys are ignored.

        Raises:
            TenantAlreadyExists: The username or database name is already registered.
            ConnectionFailure: The master database could not be reached.
        """
        values = {name: fields[name] for name in INSERTABLE_FIELDS if name in fields}
        values.setdefault("is_active", True)
        columns = ", ".join(values)
        placeholders = ", ".join(f":{name}" for name in values)

        try:
            async with self.engine.begin() as connection:
                result = await connection.execute(
                    text(
                        f"INSERT INTO tenant_directory ({columns}) VALUES ({placeholders}) "
                        f"RETURNING {DIRECTORY_COLUMNS}"
                    ),
                    values,
                )
                row = result.one()
        except IntegrityError as e:
            raise TenantAlreadyExists(values.get("username", "")) from e
        except (OperationalError, InterfaceError, OSError, TimeoutError) as e:
            raise ConnectionFailure(self.database_name, internal_error=e) from e

        logger.info(
            f"Registered tenant '{values.get('username')}' -> '{values.get('database_name')}'"
        )
        return TenantRecord.model_validate(dict(row._mapping))

    async def set_active(self, username: str, is_active: bool) -> bool:
        """
        Activate or deactivate a tenant.

        Returns:
            True if a row was updated, False if the username is unknown.
        """
        try:
            async with self.engine.begin() as connection:
                result = await connection.execute(
                    text(
                        "UPDATE tenant_directory SET is_active = :is_active, updated_at = NOW() "
                        "WHERE username = :username"
                    ),
                    {"username": username, "is_active": is_active},
                )
        except (OperationalError, InterfaceError, OSError, TimeoutError) as e:
            raise ConnectionFailure(self.database_name, internal_error=e) from e

        updated = result.rowcount > 0
        if updated:
            state = "activated" if is_active else "deactivated"
            logger.info(f"Tenant '{username}' {state}")
        return updated

    async def ping(self) -> None:
        """Probe the master database. Raises ConnectionFailure when unreachable."""
        await ping_engine(self.engine)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("Closed master directory connection pool")
            self._engine = None
