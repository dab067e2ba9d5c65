"""
Tenant API Request/Response Models

Provisioning takes ``TenantProvisionRequest`` from ``ftth_common.models`` as
its body; the responses below wrap the TenantRecord the directory returns.
Every successful response carries ``success: true`` so the dashboard can
tell it apart from the error envelope.
"""

from pydantic import BaseModel, Field

from ftth_common.models import TenantRecord


class TenantProvisionResponse(BaseModel):
    """
    Response model for POST /tenants.

    Attributes:
        success (bool): Always True; failures use the error envelope.
        database_name (str): The tenant database created, e.g. "tenant_acme".
        tenant (TenantRecord): The new directory row.
    """

    success: bool = True
    database_name: str = Field(..., description="Tenant database name")
    tenant: TenantRecord


class TenantResponse(BaseModel):
    success: bool = True
    tenant: TenantRecord


class TenantDeactivateResponse(BaseModel):
    success: bool = True
    username: str
    is_active: bool = False


class OwnerDomainResponse(BaseModel):
    """
    Response model for GET /owner/domain.

    Attributes:
        username (str): The identity that was resolved.
        domain (str): Domain of the owning tenant.
        database_name (str): Database of the owning tenant.
        tenant (TenantRecord): Full directory row of the owning tenant.
    """

    success: bool = True
    username: str
    domain: str
    database_name: str
    tenant: TenantRecord
