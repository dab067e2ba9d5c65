"""
Customer sync from the partner portal into an external-account database.

A sync pages through the upstream customers listing of one linked account and
upserts every page into that account's ``alwatani_customers_cache`` table.

Components:
    - CustomerSyncJob: the paging loop. Reports to the SyncProgressTracker and
      checks its CancellationToken before every page.
    - CustomerCacheStore: writes one page into the external-account database.
    - CustomerSyncService: starts jobs as background tasks (one per account),
      stops them cooperatively, and reads their progress.

Stages:
    login -> fetching_pages -> completed | cancelled | failed

Cancellation:
    Stopping only raises the tracker flag. The running job notices it at the
    next page boundary, keeps every page already stored, and ends with stage
    "cancelled". An upstream request in flight is allowed to finish. A task
    that shutdown has to cancel outright is recorded as "cancelled" as well.

Keys:
    Progress records and running tasks are keyed by sync_key(link), the
    owning tenant's domain plus the link id, never by the bare account id.
"""

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from datetime import date
from typing import Any, NamedTuple, Protocol

from loguru import logger
from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncEngine

from ftth_common.config import DashboardServiceSettings
from ftth_common.exceptions import SyncAlreadyRunning, SyncCancelled
from ftth_common.models.external import CustomerCache
from ftth_common.models.records import ExternalAccountLink
from ftth_common.registry import TenancyRegistry
from ftth_common.sync_progress import (
    STAGE_CANCELLED,
    STAGE_COMPLETED,
    STAGE_FAILED,
    SyncProgress,
    SyncProgressTracker,
)
from services.dashboard_service.clients.alwatani_client import (
    AlwataniClient,
    CustomerPage,
    extract_account_id,
)

STAGE_LOGIN = "login"
STAGE_FETCHING_PAGES = "fetching_pages"

# Seconds to wait for running syncs to notice a shutdown before they are cancelled
SHUTDOWN_GRACE_SECONDS = 5.0


class CustomerFetcher(Protocol):
    page_size: int

    async def fetch_customers_page(self, page_number: int) -> CustomerPage: ...


class StoreResult(NamedTuple):
    stored: int
    with_phone: int


CustomerStore = Callable[[list[dict[str, Any]]], Awaitable[StoreResult]]


def _parse_date(value: Any) -> date | None:
    if not value or not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def _display(value: Any) -> Any:
    if isinstance(value, dict):
        return value.get("displayValue")
    return value


def to_customer_row(record: dict[str, Any]) -> dict[str, Any] | None:
    """
    Map an upstream customer record onto alwatani_customers_cache columns.

    Returns None for records without an account id, which cannot be upserted.
    """
    account_id = extract_account_id(record)
    if account_id is None:
        return None

    self_ref = record.get("self") or {}
    subscriptions = record.get("subscriptions") or []
    subscription = subscriptions[0] if subscriptions and isinstance(subscriptions[0], dict) else {}

    return {
        "account_id": account_id,
        "username": record.get("username")
        or record.get("userName")
        or self_ref.get("userName")
        or record.get("displayValue")
        or self_ref.get("displayValue"),
        "device_name": record.get("deviceName")
        or record.get("device")
        or subscription.get("username")
        or subscription.get("deviceName"),
        "phone": record.get("phoneNumber")
        or record.get("customerPhone")
        or record.get("contactPhone"),
        "region": _display(record.get("zone")),
        "page_url": record.get("pageUrl"),
        "start_date": _parse_date(
            record.get("startDate") or record.get("contractStart") or subscription.get("startsAt")
        ),
        "end_date": _parse_date(
            record.get("endDate")
            or record.get("contractEnd")
            or record.get("expires")
            or subscription.get("endsAt")
        ),
        "status": record.get("status") or record.get("subscriptionStatus") or record.get("state"),
    }


class CustomerCacheStore:
    """Upserts customer pages into an external-account database, keyed by account id."""

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine

    async def __call__(self, items: list[dict[str, Any]]) -> StoreResult:
        rows = [row for row in (to_customer_row(item) for item in items) if row is not None]
        if not rows:
            return StoreResult(stored=0, with_phone=0)

        statement = insert(CustomerCache).values(rows)
        statement = statement.on_conflict_do_update(
            index_elements=[CustomerCache.account_id],
            set_={
                column: statement.excluded[column]
                for column in (
                    "username",
                    "device_name",
                    "phone",
                    "region",
                    "page_url",
                    "start_date",
                    "end_date",
                    "status",
                )
            }
            | {"updated_at": func.now()},
        )
        async with self.engine.begin() as connection:
            await connection.execute(statement)

        return StoreResult(
            stored=len(rows),
            with_phone=sum(1 for row in rows if row["phone"]),
        )


class CustomerSyncJob:
    """
    Page through the upstream customers and store each page.

    Args:
        fetcher: Source of customer pages (an entered AlwataniClient).
        store: Awaited with every non-empty page.
        tracker: Progress is reported here under ``user_id``.
        user_id: Tracker key, see sync_key().
        page_delay: Seconds to pause between pages.
        max_pages: Optional upper bound on pages fetched.
    """

    def __init__(
        self,
        fetcher: CustomerFetcher,
        store: CustomerStore,
        tracker: SyncProgressTracker,
        user_id: str,
        page_delay: float = 0.0,
        max_pages: int | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.store = store
        self.tracker = tracker
        self.user_id = user_id
        self.page_delay = page_delay
        self.max_pages = max_pages

    async def run(self) -> SyncProgress:
        """
        Run the sync to completion or cancellation.

        Returns:
            The final progress record, stage "completed" or "cancelled".

        Raises:
            Any fetch or store error, after recording stage "failed".
        """
        token = self.tracker.token(self.user_id)
        fetched = 0
        phone_found = 0
        total: int | None = None
        page_number = 1

        self.tracker.update(
            self.user_id,
            stage=STAGE_FETCHING_PAGES,
            current=0,
            total=None,
            phone_found=0,
            message="Fetching customers",
        )

        try:
            while True:
                token.raise_if_cancelled()

                page = await self.fetcher.fetch_customers_page(page_number)
                if page.total_count is not None:
                    total = page.total_count
                if not page.items:
                    break

                result = await self.store(page.items)
                fetched += len(page.items)
                phone_found += result.with_phone
                self.tracker.update(
                    self.user_id,
                    current=fetched,
                    total=total,
                    phone_found=phone_found,
                    message=f"Page {page_number}: {fetched} customers fetched",
                )
                logger.debug(
                    f"Sync {self.user_id}: page {page_number} stored {result.stored} customers"
                )

                if total is not None and fetched >= total:
                    break
                if len(page.items) < self.fetcher.page_size:
                    break
                if self.max_pages is not None and page_number >= self.max_pages:
                    break

                page_number += 1
                if self.page_delay:
                    await asyncio.sleep(self.page_delay)

        except SyncCancelled:
            logger.info(f"Customer sync {self.user_id} cancelled after {fetched} customers")
            return self.tracker.update(
                self.user_id,
                stage=STAGE_CANCELLED,
                message=f"Sync cancelled, {fetched} customers kept",
            )
        except Exception as e:
            self.tracker.update(self.user_id, stage=STAGE_FAILED, message=str(e))
            raise

        logger.info(f"Customer sync {self.user_id} completed: {fetched} customers")
        return self.tracker.update(
            self.user_id,
            stage=STAGE_COMPLETED,
            current=fetched,
            total=total if total is not None else fetched,
            message=f"Sync completed, {fetched} customers",
        )


ClientFactory = Callable[[ExternalAccountLink], AbstractAsyncContextManager[Any]]


def sync_key(link: ExternalAccountLink) -> str:
    """
    Tracker and task key of a linked account, ``<tenant domain>:<link id>``.

    Link ids are serials of each tenant's own ``alwatani_login`` table, so two
    tenants can both hold an account 5.
    """
    domain = link.tenant.domain if link.tenant is not None else "-"
    return f"{domain}:{link.id}"


class CustomerSyncService:
    """Runs at most one customer sync per external account as a background task."""

    def __init__(
        self,
        registry: TenancyRegistry,
        settings: DashboardServiceSettings,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.registry = registry
        self.settings = settings
        self.client_factory = client_factory or self._default_client
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def tracker(self) -> SyncProgressTracker:
        return self.registry.sync_progress

    def _default_client(self, link: ExternalAccountLink) -> AlwataniClient:
        return AlwataniClient(
            base_url=self.settings.ALWATANI_BASE_URL,
            username=link.username,
            password=link.password,
            page_size=self.settings.ALWATANI_PAGE_SIZE,
            timeout=self.settings.ALWATANI_TIMEOUT_SECONDS,
        )

    def is_running(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    async def _resolve_key(
        self, identity: str | None, account_id: int
    ) -> tuple[ExternalAccountLink, str]:
        link = await self.registry.resolver.resolve_external_account(identity, account_id)
        return link, sync_key(link)

    async def start(
        self, identity: str | None, account_id: int
    ) -> tuple[ExternalAccountLink, SyncProgress]:
        """
        Resolve the account, make sure its database exists and start a sync.

        Returns:
            The resolved link and the initial progress record.

        Raises:
            ExternalAccountNotFound: no tenant links the account.
            SyncAlreadyRunning: a sync for the account has not finished yet.
        """
        link, key = await self._resolve_key(identity, account_id)
        if self.is_running(key):
            raise SyncAlreadyRunning(account_id)

        await self.registry.provisioner.provision_external_account(link.username)
        engine = await self.registry.resolver.pool_for_external_link(link)

        # Provisioning awaited; another request may have started one meanwhile
        if self.is_running(key):
            raise SyncAlreadyRunning(account_id)

        # A new run gets a fresh record (and started_at)
        self.tracker.clear(key)
        progress = self.tracker.update(
            key,
            stage=STAGE_LOGIN,
            current=0,
            total=None,
            phone_found=0,
            message=f"Logging in as {link.username}",
        )
        task = asyncio.create_task(self._run(key, link, engine), name=f"customer-sync-{key}")
        self._tasks[key] = task
        task.add_done_callback(lambda finished: self._forget(key, finished))
        logger.info(f"Started customer sync for external account {key} ({link.username})")
        return link, progress

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]

    async def _run(self, key: str, link: ExternalAccountLink, engine: AsyncEngine) -> None:
        try:
            async with self.client_factory(link) as client:
                job = CustomerSyncJob(
                    fetcher=client,
                    store=CustomerCacheStore(engine),
                    tracker=self.tracker,
                    user_id=key,
                    page_delay=self.settings.SYNC_PAGE_DELAY_SECONDS,
                )
                await job.run()
        except asyncio.CancelledError:
            record = self.tracker.read(key)
            kept = record.current if record is not None else 0
            logger.warning(f"Customer sync {key} was cancelled before it could stop")
            self.tracker.update(
                key, stage=STAGE_CANCELLED, message=f"Sync cancelled, {kept} customers kept"
            )
            raise
        except Exception as e:
            logger.error(f"Customer sync for external account {key} failed: {e}")
            record = self.tracker.read(key)
            if record is None or record.stage != STAGE_FAILED:
                self.tracker.update(key, stage=STAGE_FAILED, message=str(e))

    async def stop(self, identity: str | None, account_id: int) -> tuple[SyncProgress, bool]:
        """
        Request cancellation of the account's sync.

        Returns:
            The progress record and whether a sync was running.
        """
        _, key = await self._resolve_key(identity, account_id)
        running = self.is_running(key)
        progress = self.tracker.request_cancellation(key, "Sync stop requested")
        logger.info(f"Stop requested for customer sync {key} (running: {running})")
        return progress, running

    async def progress(self, identity: str | None, account_id: int) -> SyncProgress | None:
        _, key = await self._resolve_key(identity, account_id)
        return self.tracker.read(key)

    async def shutdown(self) -> None:
        """Ask every running sync to stop, then cancel those that do not in time."""
        tasks = [task for task in self._tasks.values() if not task.done()]
        if not tasks:
            return

        for key in list(self._tasks):
            self.tracker.request_cancellation(key, "Service shutting down")
        _, pending = await asyncio.wait(tasks, timeout=SHUTDOWN_GRACE_SECONDS)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info(f"Stopped {len(tasks)} customer syncs ({len(pending)} force-cancelled)")
