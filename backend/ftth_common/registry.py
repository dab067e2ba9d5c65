"""
Process-wide tenancy state, owned explicitly.

The pool cache and the sync progress map are the only mutable state shared by
requests. Instead of module globals they live on one TenancyRegistry created at
process start (the FastAPI lifespan, or a CLI script's main) and torn down at
shutdown. Everything that needs tenant resolution receives the registry or one
of its parts.

Usage:
    ```python
    registry = TenancyRegistry(settings)
    await registry.start()
    engine = await registry.resolver.resolve_pool_for_identity("admin@acme")
    ...
    await registry.close()
    ```
"""

from loguru import logger

from ftth_common.config import BaseServiceSettings, get_settings
from ftth_common.database.master_directory import MasterDirectory
from ftth_common.database.pool_cache import PoolCache
from ftth_common.database.session import create_pool_engine
from ftth_common.database.tenant_provisioning import TenantProvisioner
from ftth_common.database.tenant_resolver import TenantResolver
from ftth_common.sync_progress import SyncProgressTracker


class TenancyRegistry:
    """
    Owns the master directory, the pool cache and the sync tracker.

    Attributes:
        directory: MasterDirectory for MASTER_DATABASE_NAME.
        pools: PoolCache shared by the resolver and the provisioner.
        resolver: TenantResolver.
        provisioner: TenantProvisioner.
        sync_progress: SyncProgressTracker for external-account syncs.
    """

    def __init__(
        self,
        settings: BaseServiceSettings | None = None,
        directory: MasterDirectory | None = None,
        pools: PoolCache | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        # PoolCache defines __len__, so an empty injected cache is falsy
        self.directory = directory if directory is not None else MasterDirectory(self.settings)
        self.pools = (
            pools
            if pools is not None
            else PoolCache(
                engine_factory=lambda database_name: create_pool_engine(
                    database_name, self.settings
                )
            )
        )
        self.resolver = TenantResolver(self.directory, self.pools, self.settings)
        self.provisioner = TenantProvisioner(self.directory, self.pools, self.settings)
        self.sync_progress = SyncProgressTracker()

    async def start(self) -> None:
        """Make sure the master directory exists before the first request."""
        await self.directory.ensure_initialized()
        logger.info("Tenancy registry started")

    async def close(self) -> None:
        """Dispose every tenant and external pool, then the master pool."""
        logger.info(f"Closing tenancy registry ({len(self.pools)} cached pools)")
        await self.pools.close_all()
        await self.directory.close()
