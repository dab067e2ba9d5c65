"""
Tenant API Endpoints

Endpoints:
    POST /tenants
        Provision a tenant: database, schema, directory row and seed admin.
        Answers 201 with the database name and the new directory row.

    GET /tenants/{username}
        Directory row of an ``admin@<domain>`` username.

    POST /tenants/{username}/deactivate
        Mark the tenant inactive and close its cached pool. Later requests for
        the tenant are answered with 404.

Error Handling:
    - 400 Bad Request: username is not ``admin@<domain>`` or the domain gives
      no usable database name
    - 404 Not Found: no such tenant
    - 409 Conflict: the username or its domain is already registered
    - 500 Internal Server Error: provisioning stopped after the database was
      created (see ProvisioningPartialFailure)
    - 503 Service Unavailable: a database could not be reached
"""

from fastapi import APIRouter, status
from loguru import logger

from ftth_common.database import get_domain_from_username
from ftth_common.exceptions import InvalidUsername, TenantNotFound
from ftth_common.models import TenantProvisionRequest
from services.dashboard_service.api.dependencies import Registry
from services.dashboard_service.api.v1.models import (
    TenantDeactivateResponse,
    TenantProvisionResponse,
    TenantResponse,
)

router = APIRouter()


@router.post(
    "/tenants",
    response_model=TenantProvisionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def provision_tenant(
    request: TenantProvisionRequest, registry: Registry
) -> TenantProvisionResponse:
    """
    Provision a new tenant.

    The username is normalized to ``admin@<domain>`` with a lower-cased
    domain, and the database is named after the domain (``admin@Acme-2``
    gives ``tenant_acme_2``).

    Example:
        ```python
        response = await client.post(
            "/api/v1/tenants",
            json={
                "username": "admin@acme",
                "password": "s3cret",
                "agent_name": "Ali Hassan Kareem",
                "company_name": "Acme Fiber",
                "governorate": "Baghdad",
                "region": "Karrada",
                "phone": "07701234567",
                "email": "owner@acme.iq",
            },
        )
        assert response.json()["database_name"] == "tenant_acme"
        ```
    """
    database_name = await registry.provisioner.provision_tenant(request)
    domain = get_domain_from_username(request.username)
    record = await registry.directory.lookup_by_domain(domain)
    if record is None:
        # Registered a moment ago; only a concurrent removal gets here
        raise TenantNotFound(domain)
    return TenantProvisionResponse(database_name=database_name, tenant=record)


@router.get("/tenants/{username}", response_model=TenantResponse)
async def get_tenant(username: str, registry: Registry) -> TenantResponse:
    domain = get_domain_from_username(username)
    if domain is None:
        raise InvalidUsername(username)
    record = await registry.directory.lookup_by_domain(domain)
    if record is None:
        raise TenantNotFound(domain)
    return TenantResponse(tenant=record)


@router.post("/tenants/{username}/deactivate", response_model=TenantDeactivateResponse)
async def deactivate_tenant(username: str, registry: Registry) -> TenantDeactivateResponse:
    """Deactivate a tenant and drop its cached pool. The database is kept."""
    updated = await registry.resolver.deactivate_tenant(username)
    if not updated:
        raise TenantNotFound(get_domain_from_username(username) or username)
    logger.info(f"Tenant '{username}' deactivated")
    return TenantDeactivateResponse(username=username)
