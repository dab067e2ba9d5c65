"""
Tests for TenancyRegistry wiring and lifecycle.
"""

import pytest
from conftest import FakeDirectory

from ftth_common.database.master_directory import MasterDirectory
from ftth_common.database.pool_cache import PoolCache, PoolNamespace
from ftth_common.registry import TenancyRegistry


class TestWiring:
    """Injected components are used as given, even when empty."""

    def test_empty_pool_cache_is_kept(self, settings, pools):
        assert len(pools) == 0

        registry = TenancyRegistry(settings, directory=FakeDirectory(), pools=pools)

        assert registry.pools is pools
        assert registry.resolver.pools is pools
        assert registry.provisioner.pools is pools

    def test_empty_directory_is_kept(self, settings, pools):
        directory = FakeDirectory()

        registry = TenancyRegistry(settings, directory=directory, pools=pools)

        assert registry.directory is directory
        assert registry.resolver.directory is directory
        assert registry.provisioner.directory is directory

    def test_defaults(self, settings):
        registry = TenancyRegistry(settings)

        assert isinstance(registry.directory, MasterDirectory)
        assert isinstance(registry.pools, PoolCache)


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_close(self, settings, pools):
        directory = FakeDirectory()
        registry = TenancyRegistry(settings, directory=directory, pools=pools)

        await registry.start()
        tenant_engine = await pools.get_or_create("acme", "tenant_acme")
        external_engine = await pools.get_or_create(
            "bot.n8nf", "alwatani_bot_n8nf", PoolNamespace.EXTERNAL
        )
        await registry.close()

        assert directory.initialized
        assert directory.closed
        assert tenant_engine.disposed
        assert external_engine.disposed
        assert len(pools) == 0
