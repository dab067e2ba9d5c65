"""
Schema creation for master, tenant and external-account databases.

All three functions are idempotent: ``metadata.create_all`` skips existing
tables, and a concurrent creator losing the race on a table or type is treated
as success.
"""

from loguru import logger
from sqlalchemy import MetaData
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine

from ftth_common.config import BaseServiceSettings
from ftth_common.database.base import ExternalBase, MasterBase, TenantBase
from ftth_common.database.session import create_pool_engine, is_already_exists_error

# Importing the model modules registers their tables on the bases
from ftth_common.models import external as _external  # noqa: F401
from ftth_common.models import master as _master  # noqa: F401
from ftth_common.models import tenant as _tenant  # noqa: F401


async def create_schema(engine: AsyncEngine, metadata: MetaData) -> None:
    """Create every table of ``metadata`` in the database ``engine`` points at."""
    database_name = engine.url.database
    try:
        async with engine.begin() as connection:
            await connection.run_sync(metadata.create_all, checkfirst=True)
    except DBAPIError as e:
        if not is_already_exists_error(e):
            raise
        logger.info(f"Schema in '{database_name}' created concurrently, continuing.")
    logger.info(
        f"Schema ready in '{database_name}' ({len(metadata.tables)} tables)."
    )


async def _create_in(
    database_name: str, metadata: MetaData, settings: BaseServiceSettings | None
) -> None:
    engine = create_pool_engine(database_name, settings)
    try:
        await create_schema(engine, metadata)
    finally:
        await engine.dispose()


async def create_master_schema(
    database_name: str, settings: BaseServiceSettings | None = None
) -> None:
    await _create_in(database_name, MasterBase.metadata, settings)


async def create_tenant_schema(
    database_name: str, settings: BaseServiceSettings | None = None
) -> None:
    """
    Create the tenant tables in ``database_name``.

    Tables: users, alwatani_login, dashboard_users, subscribers, tickets, teams,
    team_members, imported_accounts, alwatani_customers_cache,
    wallet_transactions.
    """
    await _create_in(database_name, TenantBase.metadata, settings)


async def create_external_account_schema(
    database_name: str, settings: BaseServiceSettings | None = None
) -> None:
    """
    Create the external-account tables in ``database_name``.

    Tables: alwatani_customers_cache, wallet_transactions, sla_tickets.
    """
    await _create_in(database_name, ExternalBase.metadata, settings)
