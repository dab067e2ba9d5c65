"""
Connection pool cache keyed by tenant.

One pooled AsyncEngine per tenant database, created on first use and kept for
the life of the process. Two independent namespaces share the cache:

    PoolNamespace.TENANT    key = tenant domain            ("acme")
    PoolNamespace.EXTERNAL  key = external-account username ("bot.n8nf")

Guarantees:
    - At most one live engine per (namespace, key). Concurrent first requests
      for the same key wait on a per-key asyncio.Lock; exactly one engine is
      built and the others receive it.
    - An engine is cached only after a ``SELECT 1`` probe succeeds. A failed
      probe disposes the engine and raises ConnectionFailure, so the next
      request retries from scratch.
    - Engines are disposed only by close(), close_all(), or process shutdown.
      There is no idle eviction.

Usage:
    ```python
    cache = PoolCache(engine_factory=lambda name: create_pool_engine(name, settings))
    engine = await cache.get_or_create("acme", "tenant_acme")
    ...
    await cache.close_all()
    ```
"""

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncEngine

from ftth_common.database.session import create_pool_engine, ping_engine
from ftth_common.exceptions import ConnectionFailure

EngineFactory = Callable[[str], AsyncEngine]
EngineProbe = Callable[[AsyncEngine], Awaitable[None]]


class PoolNamespace(str, Enum):
    TENANT = "tenant"
    EXTERNAL = "external"


class PoolCache:
    """Per-key cache of pooled engines with serialized first creation."""

    def __init__(
        self,
        engine_factory: EngineFactory | None = None,
        probe: EngineProbe | None = None,
    ) -> None:
        """
        Args:
            engine_factory: Builds an (unconnected) engine for a database name.
                Defaults to session.create_pool_engine with default settings.
            probe: Awaited once on every new engine before it is cached.
                Defaults to session.ping_engine.
        """
        self._engine_factory = engine_factory or create_pool_engine
        self._probe = probe or ping_engine
        self._engines: dict[tuple[PoolNamespace, str], AsyncEngine] = {}
        self._locks: dict[tuple[PoolNamespace, str], asyncio.Lock] = {}

    def _lock_for(self, cache_key: tuple[PoolNamespace, str]) -> asyncio.Lock:
        # No await between lookup and insert, so this is race-free on one loop
        lock = self._locks.get(cache_key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[cache_key] = lock
        return lock

    async def get_or_create(
        self,
        key: str,
        database_name: str,
        namespace: PoolNamespace = PoolNamespace.TENANT,
    ) -> AsyncEngine:
        """
        Return the cached engine for ``key``, creating and probing it if needed.

        Args:
            key: Tenant domain or external-account username.
            database_name: Database the engine connects to when created. Ignored
                on a cache hit.
            namespace: Which keyed namespace to use.

        Raises:
            ConnectionFailure: The new engine failed its probe. Nothing is cached.
        """
        cache_key = (namespace, key)
        engine = self._engines.get(cache_key)
        if engine is not None:
            return engine

        async with self._lock_for(cache_key):
            # Another task may have finished creating it while we waited
            engine = self._engines.get(cache_key)
            if engine is not None:
                return engine

            engine = self._engine_factory(database_name)
            try:
                await self._probe(engine)
            except ConnectionFailure:
                await self._dispose_quietly(engine, cache_key)
                raise
            except Exception as e:
                await self._dispose_quietly(engine, cache_key)
                raise ConnectionFailure(database_name, internal_error=e) from e

            self._engines[cache_key] = engine
            logger.info(
                f"Created connection pool for {namespace.value} '{key}' "
                f"(database: {database_name})"
            )
            return engine

    def get(
        self, key: str, namespace: PoolNamespace = PoolNamespace.TENANT
    ) -> AsyncEngine | None:
        return self._engines.get((namespace, key))

    def contains(self, key: str, namespace: PoolNamespace = PoolNamespace.TENANT) -> bool:
        return (namespace, key) in self._engines

    def keys(self, namespace: PoolNamespace = PoolNamespace.TENANT) -> list[str]:
        return [key for ns, key in self._engines if ns is namespace]

    async def close(self, key: str, namespace: PoolNamespace = PoolNamespace.TENANT) -> bool:
        """
        Dispose and evict the engine for ``key``.

        Returns:
            True if an engine was cached for the key.
        """
        cache_key = (namespace, key)
        async with self._lock_for(cache_key):
            engine = self._engines.pop(cache_key, None)
            if engine is None:
                return False
            await engine.dispose()
        logger.info(f"Closed connection pool for {namespace.value} '{key}'")
        return True

    async def close_all(self) -> None:
        """
        Dispose every cached engine in both namespaces.

        A failure disposing one engine is logged and the sweep continues.
        """
        engines = list(self._engines.items())
        self._engines.clear()

        for (namespace, key), engine in engines:
            try:
                await engine.dispose()
                logger.info(f"Closed connection pool for {namespace.value} '{key}'")
            except Exception as e:
                logger.error(
                    f"Error closing connection pool for {namespace.value} '{key}': {e}"
                )

    async def _dispose_quietly(
        self, engine: AsyncEngine, cache_key: tuple[PoolNamespace, str]
    ) -> None:
        try:
            await engine.dispose()
        except Exception as e:
            logger.warning(f"Error disposing unprobed pool for {cache_key[1]}: {e}")

    def __len__(self) -> int:
        return len(self._engines)
