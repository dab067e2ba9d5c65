"""
Tenant resolution: from a request identity to a tenant database pool.

An identity is either a domain-qualified owner username (``admin@acme``) or an
arbitrary username belonging to one of the tenants' local users.

Resolution:
    1. ``admin@<domain>``: the directory record for the domain decides. A missing
       or inactive tenant is TenantNotFound and no scan is attempted.
    2. Anything else: every active tenant is visited in directory order (by id)
       and its ``users`` table is checked. The first tenant holding the
       username wins.
    3. No tenant holds it: UserNotFound.

Cost:
    Step 2 is O(number of active tenants) per lookup: one query per tenant,
    plus opening a pool for every tenant not already cached. It stops at the
    first match. Callers that can send the owner's ``admin@<domain>`` identity
    should do so.

External accounts:
    A partner-portal account is linked by a row of some tenant's
    ``alwatani_login`` table. The identity's own tenant is checked first, then
    every other active tenant. The link's username keys the EXTERNAL pool
    namespace, independent of the tenant domains.
"""

from loguru import logger
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from ftth_common.config import BaseServiceSettings, get_settings
from ftth_common.database.master_directory import MasterDirectory
from ftth_common.database.pool_cache import PoolCache, PoolNamespace
from ftth_common.database.tenant_naming import (
    derive_external_database_name,
    get_domain_from_username,
)
from ftth_common.exceptions import (
    ExternalAccountNotFound,
    InvalidUsername,
    TenantNotFound,
    UserNotFound,
)
from ftth_common.models.records import ExternalAccountLink, TenantRecord


class TenantResolver:
    """Maps request identities to tenant records and pooled engines."""

    def __init__(
        self,
        directory: MasterDirectory,
        pools: PoolCache,
        settings: BaseServiceSettings | None = None,
    ) -> None:
        self.directory = directory
        self.pools = pools
        self.settings = settings or get_settings()

    # Building blocks

    async def pool_for_tenant(self, record: TenantRecord) -> AsyncEngine:
        return await self.pools.get_or_create(
            record.domain, record.database_name, PoolNamespace.TENANT
        )

    async def user_exists_in(self, engine: AsyncEngine, username: str) -> bool:
        """Check the tenant's local ``users`` table for ``username``."""
        async with engine.connect() as connection:
            result = await connection.execute(
                text("SELECT 1 FROM users WHERE username = :username LIMIT 1"),
                {"username": username},
            )
            return result.first() is not None

    async def find_external_link(
        self, engine: AsyncEngine, account_id: int
    ) -> ExternalAccountLink | None:
        """Look up one row of the tenant's ``alwatani_login`` table by id."""
        async with engine.connect() as connection:
            result = await connection.execute(
                text(
                    "SELECT id, user_id, username, password, role "
                    "FROM alwatani_login WHERE id = :account_id LIMIT 1"
                ),
                {"account_id": account_id},
            )
            row = result.first()
        return ExternalAccountLink.model_validate(dict(row._mapping)) if row else None

    async def _active_tenant_for_domain(self, domain: str) -> TenantRecord:
        record = await self.directory.lookup_by_domain(domain)
        if record is None:
            raise TenantNotFound(domain)
        if not record.is_active:
            raise TenantNotFound(domain, reason="is deactivated")
        return record

    async def _scan_for_user(self, username: str) -> tuple[TenantRecord, AsyncEngine]:
        tenants = await self.directory.list_active_tenants()
        logger.info(f"Scanning {len(tenants)} tenant databases for user '{username}'")

        for record in tenants:
            try:
                engine = await self.pool_for_tenant(record)
                if await self.user_exists_in(engine, username):
                    logger.info(f"Found user '{username}' in tenant '{record.domain}'")
                    return record, engine
            except Exception as e:
                logger.warning(
                    f"Skipping tenant '{record.domain}' while scanning for '{username}': {e}"
                )

        logger.warning(f"User '{username}' not found in {len(tenants)} tenant databases")
        raise UserNotFound(username, tenants_checked=len(tenants))

    # Identity resolution

    async def resolve_pool_for_identity(self, identity: str | None) -> AsyncEngine:
        """
        Return the pool of the tenant owning ``identity``.

        ``admin@<domain>`` identities are answered from the pool cache or the
        directory. Any other identity triggers a scan of every active tenant,
        O(number of tenants); see the module docstring.

        Raises:
            InvalidUsername: identity is empty.
            TenantNotFound: ``admin@<domain>`` with no active directory record.
            UserNotFound: plain username present in no active tenant.
            ConnectionFailure: the owning tenant's database is unreachable.
        """
        if not identity:
            raise InvalidUsername(identity)

        domain = get_domain_from_username(identity)
        if domain:
            cached = self.pools.get(domain, PoolNamespace.TENANT)
            if cached is not None:
                return cached
            record = await self._active_tenant_for_domain(domain)
            return await self.pool_for_tenant(record)

        _, engine = await self._scan_for_user(identity)
        return engine

    async def resolve_tenant_for_identity(self, identity: str | None) -> TenantRecord:
        """Same algorithm as resolve_pool_for_identity, returning the tenant record."""
        if not identity:
            raise InvalidUsername(identity)

        domain = get_domain_from_username(identity)
        if domain:
            return await self._active_tenant_for_domain(domain)

        record, _ = await self._scan_for_user(identity)
        return record

    # External accounts

    async def resolve_external_account(
        self, identity: str | None, account_id: int
    ) -> ExternalAccountLink:
        """
        Find the link row for ``account_id``.

        The identity's own tenant is checked first when it resolves; when it does
        not, or holds no such link, every other active tenant is scanned.

        Raises:
            ExternalAccountNotFound: no active tenant links the account.
        """
        checked: set[str] = set()

        if identity:
            try:
                record = await self.resolve_tenant_for_identity(identity)
                engine = await self.pool_for_tenant(record)
                checked.add(record.domain)
                link = await self.find_external_link(engine, account_id)
                if link is not None:
                    return link.model_copy(update={"tenant": record})
            except (TenantNotFound, UserNotFound) as e:
                logger.info(f"Identity '{identity}' did not resolve ({e.message}), scanning all tenants")

        tenants = await self.directory.list_active_tenants()
        logger.info(
            f"Scanning {len(tenants)} tenant databases for external account {account_id}"
        )
        for record in tenants:
            if record.domain in checked:
                continue
            try:
                engine = await self.pool_for_tenant(record)
                link = await self.find_external_link(engine, account_id)
            except Exception as e:
                logger.warning(
                    f"Skipping tenant '{record.domain}' while scanning for "
                    f"external account {account_id}: {e}"
                )
                continue
            if link is not None:
                logger.info(f"Found external account {account_id} in tenant '{record.domain}'")
                return link.model_copy(update={"tenant": record})

        raise ExternalAccountNotFound(account_id)

    async def resolve_external_pool(
        self, identity: str | None, account_id: int
    ) -> tuple[ExternalAccountLink, AsyncEngine]:
        """Resolve the link, then the per-account database pool it names."""
        link = await self.resolve_external_account(identity, account_id)
        return link, await self.pool_for_external_link(link)

    async def pool_for_external_link(self, link: ExternalAccountLink) -> AsyncEngine:
        database_name = derive_external_database_name(
            link.username, self.settings.EXTERNAL_DATABASE_PREFIX
        )
        return await self.pools.get_or_create(
            link.username, database_name, PoolNamespace.EXTERNAL
        )

    # Lifecycle

    async def deactivate_tenant(self, username: str) -> bool:
        """
        Mark the tenant inactive and close its cached pool.

        Returns:
            False if the directory has no such username.
        """
        domain = get_domain_from_username(username)
        if domain is None:
            raise InvalidUsername(username)

        updated = await self.directory.set_active(f"admin@{domain}", False)
        if updated:
            await self.pools.close(domain, PoolNamespace.TENANT)
        return updated
