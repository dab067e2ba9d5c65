"""
Plain records handed across the tenancy layer.

These are Pydantic models, not ORM rows: the directory, resolver and
provisioner return them so callers never hold a session-bound object.

Models:
    - TenantRecord: One row of the master tenant directory
    - ExternalAccountLink: One row of a tenant's alwatani_login table
    - TenantProvisionRequest: Input of TenantProvisioner.provision_tenant
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class TenantRecord(BaseModel):
    """
    A tenant as registered in the master directory.

    Attributes:
        id: Directory row id. Scans visit tenants in ascending id order.
        username: The owner's "admin@<domain>" username. Unique.
        domain: Lower-cased domain part of the username.
        database_name: The tenant's database, derived from the domain. Unique.
        is_active: Inactive tenants are skipped by scans and refused by direct
            resolution.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    domain: str
    database_name: str
    agent_name: str | None = None
    company_name: str | None = None
    governorate: str | None = None
    region: str | None = None
    phone: str | None = None
    email: str | None = None
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ExternalAccountLink(BaseModel):
    """
    A partner-portal account linked inside a tenant database.

    ``tenant`` is the directory record of the tenant whose database holds the
    link, which is not necessarily the tenant of the requesting identity.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    username: str
    password: str = Field(repr=False)
    role: str | None = None
    tenant: TenantRecord | None = None


class TenantProvisionRequest(BaseModel):
    """
    Everything needed to create a tenant.

    Example:
        ```python
        request = TenantProvisionRequest(
            username="admin@acme",
            password="s3cret",
            agent_name="Ali Hassan Kareem",
            company_name="Acme Fiber",
            governorate="Baghdad",
            region="Karrada",
            phone="07701234567",
            email="owner@acme.iq",
        )
        ```
    """

    username: str = Field(..., min_length=1, description="Owner username, admin@<domain>")
    password: str = Field(..., min_length=1, repr=False)
    agent_name: str = Field(..., min_length=1)
    company_name: str = Field(..., min_length=1)
    governorate: str = Field(..., min_length=1)
    region: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
