"""
Owner API Endpoints

Endpoints:
    GET /owner/domain
        Resolve the requesting identity to the tenant that owns it. The
        identity comes from the ``username`` query parameter or the
        ``X-Username`` header.

Resolution:
    ``admin@<domain>`` identities are answered from the master directory.
    Any other username is looked up in every active tenant's users table,
    one query per tenant, stopping at the first match.
"""

from fastapi import APIRouter

from services.dashboard_service.api.dependencies import Registry, RequiredIdentity
from services.dashboard_service.api.v1.models import OwnerDomainResponse

router = APIRouter()


@router.get("/owner/domain", response_model=OwnerDomainResponse)
async def get_owner_domain(identity: RequiredIdentity, registry: Registry) -> OwnerDomainResponse:
    record = await registry.resolver.resolve_tenant_for_identity(identity)
    return OwnerDomainResponse(
        username=identity,
        domain=record.domain,
        database_name=record.database_name,
        tenant=record,
    )
