"""
Tenant database provisioning.

This module creates the isolated database of a new tenant, registers it in the
master directory and seeds its owner account. It also creates the per-account
databases of linked partner-portal accounts.

Provisioning a tenant (``admin@<domain>``):
    1. Validate the username format                  -> InvalidUsername
    2. Refuse a username/domain already registered   -> TenantAlreadyExists
    3. Create the database and the tenant schema
    4. Insert the tenant_directory row
    5. Insert the seed admin into the tenant's users table

Failure Handling:
    Provisioning is not transactional across databases. What is left behind
    depends on the step that failed:

    - Step 3: nothing is registered yet. A database created by this call is
      dropped again and the original error propagates. A database that already
      existed before the call is left alone.
    - Step 4: the database exists with no directory entry (an orphan). It is
      logged at CRITICAL and ProvisioningPartialFailure(step="directory_insert")
      is raised. Losing a concurrent registration race for the same username
      is reported as TenantAlreadyExists instead.
    - Step 5: the tenant is registered without an owner account. Logged at
      CRITICAL, ProvisioningPartialFailure(step="seed_admin").

    Orphans are cleaned up with drop_database() by an operator.

Database Naming:
    tenant_<clean domain> and alwatani_<clean username>; see tenant_naming.

Usage:
    ```python
    provisioner = TenantProvisioner(directory, pools, settings)
    database_name = await provisioner.provision_tenant(
        TenantProvisionRequest(username="admin@acme", password="...", ...)
    )
    ```
"""

import re

from loguru import logger
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from ftth_common.config import BaseServiceSettings, get_settings
from ftth_common.database.master_directory import MasterDirectory
from ftth_common.database.pool_cache import PoolCache, PoolNamespace
from ftth_common.database.session import create_database, drop_database
from ftth_common.database.tenant_naming import (
    derive_database_name,
    derive_external_database_name,
    get_domain_from_username,
)
from ftth_common.exceptions import (
    InvalidUsername,
    ProvisioningPartialFailure,
    TenantAlreadyExists,
)
from ftth_common.models.records import TenantProvisionRequest
from ftth_common.models.schema import create_external_account_schema, create_tenant_schema
from ftth_common.security import hash_password

IRAQ_COUNTRY_CODE = "964"
PHONE_COUNTRY_CODE = re.compile(r"^(?:\+|00)?964")

SEED_ADMIN_ROLE = "admin"
SEED_ADMIN_POSITION = "Owner"


def normalize_phone(phone: str | None) -> str | None:
    """
    Normalize an Iraqi phone number to ``+964XXXXXXXXXX``.

    Any ``964``/``+964`` country code and a leading trunk ``0`` are removed
    before the ``+964`` prefix is added. Empty input is returned unchanged.

    Example:
        ``07701234567``, ``9647701234567`` and ``+964 770 123 4567`` all give
        ``+9647701234567``.
    """
    if not phone or not phone.strip():
        return phone
    digits = PHONE_COUNTRY_CODE.sub("", phone.strip().replace(" ", "").replace("-", ""))
    digits = digits.lstrip("0")
    return f"+{IRAQ_COUNTRY_CODE}{digits}" if digits else phone.strip()


class TenantProvisioner:
    """Creates tenant and external-account databases."""

    def __init__(
        self,
        directory: MasterDirectory,
        pools: PoolCache,
        settings: BaseServiceSettings | None = None,
    ) -> None:
        self.directory = directory
        self.pools = pools
        self.settings = settings or get_settings()

    async def provision_tenant(self, request: TenantProvisionRequest) -> str:
        """
        Provision a tenant end to end.

        Returns:
            The tenant's database name, e.g. "tenant_acme".

        Raises:
            InvalidUsername: username is not ``admin@<domain>``.
            TenantAlreadyExists: the username, its domain or its database name is
                already registered.
            InvalidDatabaseName: the domain does not produce a usable name.
            ProvisioningPartialFailure: step 4 or 5 failed; see module docstring.
        """
        # Step 1: validate
        domain = get_domain_from_username(request.username)
        if domain is None:
            raise InvalidUsername(request.username)
        username = f"admin@{domain}"
        database_name = derive_database_name(domain, self.settings.TENANT_DATABASE_PREFIX)

        # Step 2: refuse duplicates
        if await self.directory.lookup_by_username(username) is not None:
            raise TenantAlreadyExists(username)
        if await self.directory.lookup_by_domain(domain) is not None:
            raise TenantAlreadyExists(username)
        # Distinct domains can clean to the same name (acme.2, acme-2)
        existing = await self.directory.lookup_by_database_name(database_name)
        if existing is not None:
            logger.warning(
                f"Database '{database_name}' already belongs to tenant '{existing.username}'"
            )
            raise TenantAlreadyExists(username)

        logger.info(f"Starting provisioning for tenant '{username}' -> '{database_name}'...")

        # Step 3: database and schema
        created = await create_database(database_name, self.settings)
        try:
            await create_tenant_schema(database_name, self.settings)
        except Exception:
            logger.error(f"Schema creation failed for tenant database '{database_name}'")
            if created:
                await self._drop_quietly(database_name)
            raise

        # Step 4: directory row
        phone = normalize_phone(request.phone)
        try:
            record = await self.directory.insert_tenant(
                username=username,
                domain=domain,
                database_name=database_name,
                agent_name=request.agent_name.strip(),
                company_name=request.company_name.strip(),
                governorate=request.governorate.strip(),
                region=request.region.strip(),
                phone=phone,
                email=request.email.strip(),
                is_active=True,
            )
        except TenantAlreadyExists:
            logger.warning(f"Tenant '{username}' was registered concurrently")
            raise
        except Exception as e:
            logger.critical(
                f"ORPHANED DATABASE: '{database_name}' was created for '{username}' "
                f"but the directory insert failed: {e}. Manual cleanup required."
            )
            raise ProvisioningPartialFailure(database_name, "directory_insert", e) from e

        # Step 5: seed admin
        try:
            engine = await self.pools.get_or_create(
                record.domain, record.database_name, PoolNamespace.TENANT
            )
            await self.insert_seed_admin(engine, request, username, phone)
        except Exception as e:
            logger.critical(
                f"Tenant '{username}' is registered in '{database_name}' without an "
                f"owner account, seed admin insert failed: {e}"
            )
            raise ProvisioningPartialFailure(database_name, "seed_admin", e) from e

        logger.info(f"Successfully provisioned tenant '{username}' in '{database_name}'")
        return database_name

    async def insert_seed_admin(
        self,
        engine: AsyncEngine,
        request: TenantProvisionRequest,
        username: str,
        phone: str | None,
    ) -> None:
        async with engine.begin() as connection:
            await connection.execute(
                text("""
                    INSERT INTO users (
                        username, password, role, display_name, position,
                        agent_name, company_name, governorate, region, phone, email, is_active
                    ) VALUES (
                        :username, :password, :role, :display_name, :position,
                        :agent_name, :company_name, :governorate, :region, :phone, :email, TRUE
                    )
                """),
                {
                    "username": username,
                    "password": hash_password(request.password),
                    "role": SEED_ADMIN_ROLE,
                    "display_name": request.agent_name.strip(),
                    "position": SEED_ADMIN_POSITION,
                    "agent_name": request.agent_name.strip(),
                    "company_name": request.company_name.strip(),
                    "governorate": request.governorate.strip(),
                    "region": request.region.strip(),
                    "phone": phone,
                    "email": request.email.strip(),
                },
            )

    async def provision_external_account(self, username: str) -> str:
        """
        Create (or continue creating) the database of a linked external account.

        There is no "already exists" refusal: an existing database is reused and
        any missing tables are added. The EXTERNAL pool is warmed on success.

        Returns:
            The account's database name, e.g. "alwatani_bot_n8nf".
        """
        database_name = derive_external_database_name(
            username, self.settings.EXTERNAL_DATABASE_PREFIX
        )
        logger.info(f"Provisioning external account database '{database_name}' for '{username}'")

        await create_database(database_name, self.settings)
        await create_external_account_schema(database_name, self.settings)
        await self.pools.get_or_create(username, database_name, PoolNamespace.EXTERNAL)

        logger.info(f"External account database '{database_name}' ready")
        return database_name

    async def drop_database(self, database_name: str) -> None:
        """Terminate sessions on ``database_name`` and drop it."""
        await drop_database(database_name, self.settings)

    async def _drop_quietly(self, database_name: str) -> None:
        try:
            await drop_database(database_name, self.settings)
        except Exception as e:
            logger.error(
                f"Cleanup of '{database_name}' failed, the database must be dropped manually: {e}"
            )
