"""
Tests for the customer sync job, its store and the background sync service.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from conftest import FakeDirectory, FakeEngine, make_record

from ftth_common.database.pool_cache import PoolCache
from ftth_common.exceptions import ExternalAccountNotFound, SyncAlreadyRunning
from ftth_common.models.records import ExternalAccountLink
from ftth_common.registry import TenancyRegistry
from ftth_common.sync_progress import SyncProgressTracker
from services.dashboard_service.clients.alwatani_client import (
    AlwataniAuthError,
    AlwataniUnavailable,
    CustomerPage,
)
from services.dashboard_service.services.customer_sync import (
    CustomerCacheStore,
    CustomerSyncJob,
    CustomerSyncService,
    StoreResult,
    sync_key,
    to_customer_row,
)

MODULE = "services.dashboard_service.services.customer_sync"


def customer(account_id: int, phone: str | None = None) -> dict:
    record = {"self": {"id": str(account_id), "displayValue": f"Customer {account_id}"}}
    if phone:
        record["phoneNumber"] = phone
    return record


class FakeFetcher:
    """Serves pages from a list; ``on_page`` runs before each page is returned."""

    def __init__(self, pages, total=None, page_size=2, on_page=None, error_on=None):
        self.pages = pages
        self.total = total
        self.page_size = page_size
        self.on_page = on_page
        self.error_on = error_on
        self.fetched: list[int] = []

    async def fetch_customers_page(self, page_number):
        self.fetched.append(page_number)
        if self.error_on == page_number:
            raise AlwataniUnavailable("customers page returned status 502")
        if self.on_page is not None:
            await self.on_page(page_number)
        items = self.pages[page_number - 1] if page_number <= len(self.pages) else []
        return CustomerPage(page_number=page_number, items=items, total_count=self.total)


def counting_store():
    async def store(items):
        return StoreResult(
            stored=len(items), with_phone=sum(1 for item in items if item.get("phoneNumber"))
        )

    return AsyncMock(side_effect=store)


@pytest.fixture
def tracker() -> SyncProgressTracker:
    return SyncProgressTracker()


class TestCustomerSyncJob:
    """Tests for the paging loop."""

    @pytest.mark.asyncio
    async def test_completes_when_total_reached(self, tracker):
        pages = [[customer(1, "0770"), customer(2)], [customer(3), customer(4, "0771")], [customer(5)]]
        fetcher = FakeFetcher(pages, total=5)
        store = counting_store()

        result = await CustomerSyncJob(fetcher, store, tracker, "42").run()

        assert result.stage == "completed"
        assert result.current == 5
        assert result.total == 5
        assert result.phone_found == 2
        assert result.percentage == 100.0
        assert fetcher.fetched == [1, 2, 3]
        assert store.await_count == 3
        assert tracker.read("42") == result

    @pytest.mark.asyncio
    async def test_stops_on_empty_page_without_total(self, tracker):
        fetcher = FakeFetcher([[customer(1), customer(2)], [customer(3), customer(4)]])

        result = await CustomerSyncJob(fetcher, counting_store(), tracker, "42").run()

        assert fetcher.fetched == [1, 2, 3]
        assert result.stage == "completed"
        assert result.total == 4

    @pytest.mark.asyncio
    async def test_stops_on_short_page(self, tracker):
        fetcher = FakeFetcher([[customer(1), customer(2)], [customer(3)]])

        await CustomerSyncJob(fetcher, counting_store(), tracker, "42").run()

        assert fetcher.fetched == [1, 2]

    @pytest.mark.asyncio
    async def test_max_pages(self, tracker):
        pages = [[customer(i), customer(i + 100)] for i in range(10)]
        fetcher = FakeFetcher(pages)

        result = await CustomerSyncJob(fetcher, counting_store(), tracker, "42", max_pages=3).run()

        assert fetcher.fetched == [1, 2, 3]
        assert result.current == 6

    @pytest.mark.asyncio
    async def test_cancellation_between_pages_keeps_stored_pages(self, tracker):
        async def stop_on_second_page(page_number):
            if page_number == 2:
                tracker.request_cancellation("42", "stop requested")

        pages = [[customer(i), customer(i + 100)] for i in range(5)]
        fetcher = FakeFetcher(pages, total=10, on_page=stop_on_second_page)
        store = counting_store()

        result = await CustomerSyncJob(fetcher, store, tracker, "42").run()

        assert result.stage == "cancelled"
        assert result.current == 4
        assert fetcher.fetched == [1, 2]
        assert store.await_count == 2
        assert result.cancel_requested

    @pytest.mark.asyncio
    async def test_cancelled_before_first_page(self, tracker):
        tracker.request_cancellation("42")
        fetcher = FakeFetcher([[customer(1)]])

        result = await CustomerSyncJob(fetcher, counting_store(), tracker, "42").run()

        assert result.stage == "cancelled"
        assert fetcher.fetched == []

    @pytest.mark.asyncio
    async def test_failure_is_recorded_and_raised(self, tracker):
        fetcher = FakeFetcher([[customer(1), customer(2)]] * 3, error_on=2)

        with pytest.raises(AlwataniUnavailable):
            await CustomerSyncJob(fetcher, counting_store(), tracker, "42").run()

        record = tracker.read("42")
        assert record.stage == "failed"
        assert "502" in record.message
        assert record.current == 2


class TestCustomerRows:
    def test_maps_upstream_fields(self):
        row = to_customer_row(
            {
                "self": {"id": "1001", "displayValue": "Ahmed Ali"},
                "phoneNumber": "07701234567",
                "zone": {"displayValue": "Karrada"},
                "subscriptions": [
                    {"deviceName": "ONT-1", "startsAt": "2024-01-05T00:00:00Z", "endsAt": "2024-02-05"}
                ],
                "status": "Active",
            }
        )

        assert row == {
            "account_id": "1001",
            "username": "Ahmed Ali",
            "device_name": "ONT-1",
            "phone": "07701234567",
            "region": "Karrada",
            "page_url": None,
            "start_date": date(2024, 1, 5),
            "end_date": date(2024, 2, 5),
            "status": "Active",
        }

    def test_record_without_account_id_is_skipped(self):
        assert to_customer_row({"displayValue": "nobody"}) is None

    def test_unparseable_date(self):
        row = to_customer_row({"accountId": 1, "startDate": "soon"})
        assert row["start_date"] is None


class TestCustomerCacheStore:
    @pytest.mark.asyncio
    async def test_upserts_page(self):
        connection = AsyncMock()
        engine = MagicMock()
        engine.begin.return_value.__aenter__.return_value = connection

        result = await CustomerCacheStore(engine)(
            [customer(1, "0770"), customer(2), {"name": "no id"}]
        )

        assert result == StoreResult(stored=2, with_phone=1)
        connection.execute.assert_awaited_once()
        statement = str(connection.execute.await_args.args[0])
        assert "ON CONFLICT (account_id) DO UPDATE" in statement

    @pytest.mark.asyncio
    async def test_page_without_ids_writes_nothing(self):
        engine = MagicMock()

        result = await CustomerCacheStore(engine)([{"name": "no id"}])

        assert result == StoreResult(stored=0, with_phone=0)
        engine.begin.assert_not_called()


LINK = ExternalAccountLink(
    id=42,
    user_id=1,
    username="bot.n8nf",
    password="secret",
    tenant=make_record(2, "tec"),
)
TEC_KEY = "tec:42"


@pytest.fixture
def registry(dashboard_settings) -> TenancyRegistry:
    registry = TenancyRegistry(
        dashboard_settings,
        directory=FakeDirectory([make_record(2, "tec")]),
        pools=PoolCache(engine_factory=FakeEngine, probe=AsyncMock()),
    )
    registry.resolver.resolve_external_account = AsyncMock(return_value=LINK)
    registry.resolver.pool_for_external_link = AsyncMock(
        return_value=FakeEngine("alwatani_bot_n8nf")
    )
    registry.provisioner.provision_external_account = AsyncMock(return_value="alwatani_bot_n8nf")
    return registry


@pytest.fixture
def store_patch():
    with patch(f"{MODULE}.CustomerCacheStore", side_effect=lambda engine: counting_store()) as store:
        yield store


def service_with(registry, dashboard_settings, fetcher) -> CustomerSyncService:
    @asynccontextmanager
    async def client_factory(link):
        yield fetcher

    return CustomerSyncService(registry, dashboard_settings, client_factory=client_factory)


class TestCustomerSyncService:
    """Tests for running syncs in the background."""

    @pytest.mark.asyncio
    async def test_start_runs_to_completion(self, registry, dashboard_settings, store_patch):
        fetcher = FakeFetcher([[customer(1), customer(2)], [customer(3)]], total=3)
        service = service_with(registry, dashboard_settings, fetcher)

        link, progress = await service.start("admin@tec", 42)
        task = service._tasks[TEC_KEY]
        await asyncio.wait_for(task, timeout=1)

        assert link.username == "bot.n8nf"
        assert progress.stage == "login"
        registry.provisioner.provision_external_account.assert_awaited_once_with("bot.n8nf")
        store_patch.assert_called_once()
        assert registry.sync_progress.read(TEC_KEY).stage == "completed"
        assert not service.is_running(TEC_KEY)

    @pytest.mark.asyncio
    async def test_second_start_while_running(self, registry, dashboard_settings, store_patch):
        release = asyncio.Event()

        async def wait_for_release(page_number):
            await release.wait()

        service = service_with(
            registry, dashboard_settings, FakeFetcher([[customer(1)]], on_page=wait_for_release)
        )

        await service.start("admin@tec", 42)
        with pytest.raises(SyncAlreadyRunning) as exc_info:
            await service.start("admin@tec", 42)

        assert exc_info.value.status_code == 409
        release.set()
        await asyncio.wait_for(service._tasks[TEC_KEY], timeout=1)

    @pytest.mark.asyncio
    async def test_stop_cancels_at_next_page(self, registry, dashboard_settings, store_patch):
        release = asyncio.Event()

        async def wait_on_first_page(page_number):
            if page_number == 1:
                await release.wait()

        pages = [[customer(i), customer(i + 100)] for i in range(5)]
        service = service_with(
            registry,
            dashboard_settings,
            FakeFetcher(pages, total=10, on_page=wait_on_first_page),
        )

        await service.start(None, 42)
        task = service._tasks[TEC_KEY]
        await asyncio.sleep(0)

        progress, running = await service.stop(None, 42)
        assert running
        assert progress.cancel_requested

        release.set()
        await asyncio.wait_for(task, timeout=1)

        final = await service.progress(None, 42)
        assert final.stage == "cancelled"
        assert final.current == 2

    @pytest.mark.asyncio
    async def test_failed_login_is_reported(self, registry, dashboard_settings, store_patch):
        class RefusingFetcher(FakeFetcher):
            async def fetch_customers_page(self, page_number):
                raise AlwataniAuthError("bot.n8nf", "bad credentials")

        service = service_with(registry, dashboard_settings, RefusingFetcher([]))

        await service.start("admin@tec", 42)
        await asyncio.wait_for(service._tasks[TEC_KEY], timeout=1)

        record = registry.sync_progress.read(TEC_KEY)
        assert record.stage == "failed"
        assert "bad credentials" in record.message

    @pytest.mark.asyncio
    async def test_unknown_account_starts_nothing(self, registry, dashboard_settings):
        registry.resolver.resolve_external_account.side_effect = ExternalAccountNotFound(99)
        service = service_with(registry, dashboard_settings, FakeFetcher([]))

        with pytest.raises(ExternalAccountNotFound):
            await service.start("admin@tec", 99)

        assert not service.is_running("tec:99")
        registry.provisioner.provision_external_account.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_progress_before_any_sync(self, registry, dashboard_settings):
        service = service_with(registry, dashboard_settings, FakeFetcher([]))

        assert await service.progress("admin@tec", 42) is None

    @pytest.mark.asyncio
    async def test_shutdown_cancels_stuck_syncs(self, registry, dashboard_settings, store_patch):
        async def never_returns(page_number):
            await asyncio.Event().wait()

        service = service_with(
            registry, dashboard_settings, FakeFetcher([[customer(1)]], on_page=never_returns)
        )
        await service.start("admin@tec", 42)
        task = service._tasks[TEC_KEY]
        await asyncio.sleep(0)

        with patch(f"{MODULE}.SHUTDOWN_GRACE_SECONDS", 0.01):
            await service.shutdown()

        assert task.cancelled()
        record = registry.sync_progress.read(TEC_KEY)
        assert record.cancel_requested
        assert record.stage == "cancelled"
        assert record.message == "Sync cancelled, 0 customers kept"


class TestTenantIsolation:
    """Link ids are per-tenant serials, so two tenants can both link account 5."""

    @pytest.fixture
    def links(self) -> dict[str, ExternalAccountLink]:
        return {
            "admin@acme": ExternalAccountLink(
                id=5, user_id=1, username="acme.bot", password="a", tenant=make_record(1, "acme")
            ),
            "admin@tec": ExternalAccountLink(
                id=5, user_id=3, username="tec.bot", password="t", tenant=make_record(2, "tec")
            ),
        }

    def test_sync_key(self, links):
        assert sync_key(links["admin@acme"]) == "acme:5"
        assert sync_key(links["admin@tec"]) == "tec:5"

    @pytest.mark.asyncio
    async def test_same_account_id_in_two_tenants(
        self, registry, dashboard_settings, store_patch, links
    ):
        registry.resolver.resolve_external_account.side_effect = (
            lambda identity, account_id: links[identity]
        )
        release = asyncio.Event()

        async def wait_for_release(page_number):
            await release.wait()

        fetchers = {
            "acme.bot": FakeFetcher([[customer(1)]], on_page=wait_for_release),
            "tec.bot": FakeFetcher([[customer(2)]]),
        }

        @asynccontextmanager
        async def client_factory(link):
            yield fetchers[link.username]

        service = CustomerSyncService(registry, dashboard_settings, client_factory=client_factory)

        await service.start("admin@acme", 5)
        acme_task = service._tasks["acme:5"]
        await asyncio.sleep(0)

        _, running = await service.stop("admin@tec", 5)
        assert not running
        assert not registry.sync_progress.is_cancelled("acme:5")

        await service.start("admin@tec", 5)
        await asyncio.wait_for(service._tasks["tec:5"], timeout=1)

        assert (await service.progress("admin@tec", 5)).stage == "completed"
        assert (await service.progress("admin@acme", 5)).stage == "fetching_pages"
        assert service.is_running("acme:5")

        release.set()
        await asyncio.wait_for(acme_task, timeout=1)
        assert (await service.progress("admin@acme", 5)).stage == "completed"
