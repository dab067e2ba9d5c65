"""
Tests for the keyed pool cache.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from conftest import FakeEngine

from ftth_common.database.pool_cache import PoolCache, PoolNamespace
from ftth_common.exceptions import ConnectionFailure


class TestGetOrCreate:
    """Tests for creating and reusing pools."""

    @pytest.mark.asyncio
    async def test_creates_probes_and_caches(self, pools, probe):
        engine = await pools.get_or_create("acme", "tenant_acme")

        assert engine.url.database == "tenant_acme"
        probe.assert_awaited_once_with(engine)
        assert pools.get("acme") is engine
        assert pools.contains("acme")
        assert len(pools) == 1

    @pytest.mark.asyncio
    async def test_cache_hit_ignores_database_name(self, pools, probe):
        first = await pools.get_or_create("acme", "tenant_acme")
        second = await pools.get_or_create("acme", "something_else")

        assert second is first
        assert probe.await_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_first_requests_build_one_pool(self):
        created = []

        def factory(database_name):
            engine = FakeEngine(database_name)
            created.append(engine)
            return engine

        async def slow_probe(engine):
            await asyncio.sleep(0.01)

        pools = PoolCache(engine_factory=factory, probe=slow_probe)
        engines = await asyncio.gather(
            *(pools.get_or_create("acme", "tenant_acme") for _ in range(10))
        )

        assert len(created) == 1
        assert all(engine is created[0] for engine in engines)

    @pytest.mark.asyncio
    async def test_different_keys_do_not_share_pools(self, pools):
        acme = await pools.get_or_create("acme", "tenant_acme")
        tec = await pools.get_or_create("tec", "tenant_tec")

        assert acme is not tec
        assert sorted(pools.keys()) == ["acme", "tec"]

    @pytest.mark.asyncio
    async def test_namespaces_are_independent(self, pools):
        tenant = await pools.get_or_create("acme", "tenant_acme", PoolNamespace.TENANT)
        external = await pools.get_or_create("acme", "alwatani_acme", PoolNamespace.EXTERNAL)

        assert tenant is not external
        assert pools.keys(PoolNamespace.TENANT) == ["acme"]
        assert pools.keys(PoolNamespace.EXTERNAL) == ["acme"]
        assert pools.get("acme", PoolNamespace.EXTERNAL) is external


class TestProbeFailure:
    """A pool that cannot connect is never cached."""

    @pytest.mark.asyncio
    async def test_connection_failure_is_not_cached(self):
        created = []

        def factory(database_name):
            engine = FakeEngine(database_name)
            created.append(engine)
            return engine

        probe = AsyncMock(side_effect=[ConnectionFailure("tenant_acme"), None])
        pools = PoolCache(engine_factory=factory, probe=probe)

        with pytest.raises(ConnectionFailure):
            await pools.get_or_create("acme", "tenant_acme")

        assert not pools.contains("acme")
        assert created[0].disposed

        # The next request makes a fresh attempt
        engine = await pools.get_or_create("acme", "tenant_acme")
        assert engine is created[1]
        assert pools.get("acme") is engine

    @pytest.mark.asyncio
    async def test_other_probe_errors_become_connection_failure(self):
        pools = PoolCache(engine_factory=FakeEngine, probe=AsyncMock(side_effect=OSError("refused")))

        with pytest.raises(ConnectionFailure) as exc_info:
            await pools.get_or_create("acme", "tenant_acme")

        assert exc_info.value.database_name == "tenant_acme"
        assert exc_info.value.status_code == 503
        assert isinstance(exc_info.value.internal_error, OSError)
        assert len(pools) == 0


class TestClose:
    """Tests for evicting pools."""

    @pytest.mark.asyncio
    async def test_close_disposes_and_evicts(self, pools):
        engine = await pools.get_or_create("acme", "tenant_acme")

        assert await pools.close("acme") is True
        assert engine.disposed
        assert not pools.contains("acme")

    @pytest.mark.asyncio
    async def test_close_unknown_key(self, pools):
        assert await pools.close("nobody") is False

    @pytest.mark.asyncio
    async def test_close_all_continues_past_errors(self, pools):
        broken = await pools.get_or_create("acme", "tenant_acme")
        healthy = await pools.get_or_create("tec", "tenant_tec")
        external = await pools.get_or_create("bot", "alwatani_bot", PoolNamespace.EXTERNAL)
        broken.dispose = AsyncMock(side_effect=RuntimeError("boom"))

        await pools.close_all()

        broken.dispose.assert_awaited_once()
        assert healthy.disposed
        assert external.disposed
        assert len(pools) == 0
