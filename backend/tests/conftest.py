"""
Pytest configuration and fixtures for the tenancy layer and the dashboard service.

No test talks to PostgreSQL. Engines are FakeEngine instances, the master
directory is an in-memory FakeDirectory, and per-tenant queries are patched on
the resolver/provisioner with AsyncMock.
"""

import os
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock

import pytest

# Set test environment variables before importing modules
os.environ.setdefault("POSTGRES_HOST", "localhost")
os.environ.setdefault("POSTGRES_PORT", "5432")
os.environ.setdefault("POSTGRES_USER", "postgres")
os.environ.setdefault("POSTGRES_PASSWORD", "postgres")
os.environ.setdefault("ENVIRONMENT", "DEV")

from ftth_common.config import BaseServiceSettings, DashboardServiceSettings  # noqa: E402
from ftth_common.database.pool_cache import PoolCache  # noqa: E402
from ftth_common.exceptions import TenantAlreadyExists  # noqa: E402
from ftth_common.models.records import TenantRecord  # noqa: E402


class FakeEngine:
    """Stands in for an AsyncEngine: knows its database name and whether it was disposed."""

    def __init__(self, database_name: str) -> None:
        self.url = SimpleNamespace(database=database_name)
        self.dispose_calls = 0

    @property
    def disposed(self) -> bool:
        return self.dispose_calls > 0

    async def dispose(self) -> None:
        self.dispose_calls += 1

    def __repr__(self) -> str:
        return f"FakeEngine({self.url.database!r})"


class FakeDirectory:
    """In-memory MasterDirectory with the same query semantics."""

    def __init__(self, records: list[TenantRecord] | None = None) -> None:
        self.records: list[TenantRecord] = list(records or [])
        self.fail_insert: Exception | None = None
        self.initialized = False
        self.closed = False

    async def ensure_initialized(self) -> None:
        self.initialized = True

    async def lookup_by_username(self, username: str) -> TenantRecord | None:
        return next((r for r in self.records if r.username == username), None)

    async def lookup_by_domain(self, domain: str) -> TenantRecord | None:
        return next((r for r in self.records if r.domain == domain.lower()), None)

    async def lookup_by_database_name(self, database_name: str) -> TenantRecord | None:
        return next((r for r in self.records if r.database_name == database_name), None)

    async def list_active_tenants(self) -> list[TenantRecord]:
        return sorted((r for r in self.records if r.is_active), key=lambda r: r.id)

    async def insert_tenant(self, **fields: Any) -> TenantRecord:
        if self.fail_insert is not None:
            raise self.fail_insert
        if any(
            r.username == fields["username"] or r.database_name == fields["database_name"]
            for r in self.records
        ):
            raise TenantAlreadyExists(fields["username"])
        record = TenantRecord(id=len(self.records) + 1, **fields)
        self.records.append(record)
        return record

    async def set_active(self, username: str, is_active: bool) -> bool:
        for index, record in enumerate(self.records):
            if record.username == username:
                self.records[index] = record.model_copy(update={"is_active": is_active})
                return True
        return False

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        self.closed = True


def make_record(record_id: int, domain: str, is_active: bool = True) -> TenantRecord:
    """Directory record for ``admin@<domain>`` in ``tenant_<domain>``."""
    return TenantRecord(
        id=record_id,
        username=f"admin@{domain}",
        domain=domain,
        database_name=f"tenant_{domain}",
        company_name=f"{domain.title()} Fiber",
        is_active=is_active,
    )


@pytest.fixture
def settings() -> BaseServiceSettings:
    """Return base settings with the default prefixes."""
    return BaseServiceSettings()


@pytest.fixture
def dashboard_settings() -> DashboardServiceSettings:
    return DashboardServiceSettings(
        ALWATANI_BASE_URL="https://portal.test", ALWATANI_PAGE_SIZE=2
    )


@pytest.fixture
def probe() -> AsyncMock:
    """Probe that accepts every engine."""
    return AsyncMock(return_value=None)


@pytest.fixture
def pools(probe) -> PoolCache:
    """Pool cache building FakeEngines."""
    return PoolCache(engine_factory=FakeEngine, probe=probe)


@pytest.fixture
def directory() -> FakeDirectory:
    """Directory with two active tenants and one inactive tenant."""
    return FakeDirectory(
        [
            make_record(1, "acme"),
            make_record(2, "tec"),
            make_record(3, "oldco", is_active=False),
        ]
    )
