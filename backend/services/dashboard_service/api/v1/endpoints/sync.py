"""
Customer Sync API Endpoints

Endpoints:
    POST /external-accounts/{account_id}/customers/sync
        Start a background customer sync of the linked partner-portal account.
        Answers 202 with the initial progress record. The account database
        (``alwatani_<username>``) is created first when it does not exist.

    POST /external-accounts/{account_id}/customers/sync/stop
        Request cooperative cancellation. The job stops at its next page
        boundary and keeps every customer already stored.

    GET /external-accounts/{account_id}/customers/sync-progress
        Current progress record, or ``null`` if no sync ran since startup.

Account id:
    Taken from query ``alwatani_login_id``, body ``alwatani_login_id``, header
    ``X-Alwatani-Login-Id`` or the path, in that order. The identity (query
    ``username``, body ``username``/``owner_username`` or ``X-Username``) is
    optional; when present its tenant is searched first.

Error Handling:
    - 400 Bad Request: account id is not an integer
    - 404 Not Found: no active tenant links the account
    - 409 Conflict: a sync for the account is already running
"""

from fastapi import APIRouter, status

from services.dashboard_service.api.dependencies import AccountId, CustomerSync, Identity
from services.dashboard_service.api.v1.models import (
    SyncProgressResponse,
    SyncStartResponse,
    SyncStopResponse,
)

router = APIRouter(prefix="/external-accounts/{account_id}/customers")


@router.post(
    "/sync",
    response_model=SyncStartResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_customer_sync(
    login_id: AccountId, identity: Identity, customer_sync: CustomerSync
) -> SyncStartResponse:
    link, progress = await customer_sync.start(identity, login_id)
    return SyncStartResponse(
        account_id=login_id,
        username=link.username,
        tenant_domain=link.tenant.domain if link.tenant else None,
        progress=progress,
    )


@router.post("/sync/stop", response_model=SyncStopResponse)
async def stop_customer_sync(
    login_id: AccountId, identity: Identity, customer_sync: CustomerSync
) -> SyncStopResponse:
    progress, running = await customer_sync.stop(identity, login_id)
    return SyncStopResponse(account_id=login_id, running=running, progress=progress)


@router.get("/sync-progress", response_model=SyncProgressResponse)
async def get_customer_sync_progress(
    login_id: AccountId, identity: Identity, customer_sync: CustomerSync
) -> SyncProgressResponse:
    progress = await customer_sync.progress(identity, login_id)
    return SyncProgressResponse(account_id=login_id, progress=progress)
