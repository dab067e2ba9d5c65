"""
Shared API dependencies for the dashboard service.

Identity:
    The requesting identity is taken from the first non-empty of
        1. query parameter ``username``
        2. JSON body field ``username``, then ``owner_username``
        3. header ``X-Username``

External account id:
    Taken from the first present of
        1. query parameter ``alwatani_login_id``
        2. JSON body field ``alwatani_login_id``
        3. header ``X-Alwatani-Login-Id``
        4. the ``account_id`` path parameter
"""

from typing import Annotated, Any

from fastapi import Depends, Header, Query, Request

from ftth_common.exceptions import InvalidAccountId, MissingIdentity
from ftth_common.registry import TenancyRegistry
from services.dashboard_service.services.customer_sync import CustomerSyncService

BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


def get_registry(request: Request) -> TenancyRegistry:
    """Return the TenancyRegistry created by the application lifespan."""
    return request.app.state.registry


def get_customer_sync(request: Request) -> CustomerSyncService:
    return request.app.state.customer_sync


async def _json_body(request: Request) -> dict[str, Any]:
    # A missing or malformed body simply carries no identity
    if request.method not in BODY_METHODS:
        return {}
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


async def get_identity(
    request: Request,
    username: Annotated[str | None, Query()] = None,
    x_username: Annotated[str | None, Header()] = None,
) -> str | None:
    body = await _json_body(request)
    for candidate in (
        username,
        body.get("username"),
        body.get("owner_username"),
        x_username,
    ):
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return None


async def require_identity(
    identity: Annotated[str | None, Depends(get_identity)],
) -> str:
    if identity is None:
        raise MissingIdentity()
    return identity


async def get_account_id(
    request: Request,
    alwatani_login_id: Annotated[str | None, Query()] = None,
    x_alwatani_login_id: Annotated[str | None, Header()] = None,
) -> int:
    body = await _json_body(request)
    for candidate in (
        alwatani_login_id,
        body.get("alwatani_login_id"),
        x_alwatani_login_id,
        request.path_params.get("account_id"),
    ):
        if candidate is None or (isinstance(candidate, str) and not candidate.strip()):
            continue
        if isinstance(candidate, bool):
            raise InvalidAccountId(candidate)
        try:
            return int(candidate)
        except (TypeError, ValueError) as e:
            raise InvalidAccountId(candidate) from e
    raise InvalidAccountId(None)


Registry = Annotated[TenancyRegistry, Depends(get_registry)]
CustomerSync = Annotated[CustomerSyncService, Depends(get_customer_sync)]
Identity = Annotated[str | None, Depends(get_identity)]
RequiredIdentity = Annotated[str, Depends(require_identity)]
AccountId = Annotated[int, Depends(get_account_id)]
