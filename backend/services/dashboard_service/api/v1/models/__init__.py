"""
Dashboard Service API v1 Models Package

This package exports all Pydantic models used for response serialization in
the dashboard service API v1.

Models:
    - TenantProvisionResponse: Tenant provisioning response
    - TenantResponse: Tenant lookup response
    - TenantDeactivateResponse: Tenant deactivation response
    - OwnerDomainResponse: Identity to owning tenant response
    - SyncStartResponse: Customer sync start response
    - SyncStopResponse: Customer sync stop response
    - SyncProgressResponse: Customer sync progress response
    - DatabaseHealthResponse: Database health response
"""

from .health import DatabaseHealthResponse
from .sync import SyncProgressResponse, SyncStartResponse, SyncStopResponse
from .tenants import (
    OwnerDomainResponse,
    TenantDeactivateResponse,
    TenantProvisionResponse,
    TenantResponse,
)

__all__ = [
    "DatabaseHealthResponse",
    "OwnerDomainResponse",
    "SyncProgressResponse",
    "SyncStartResponse",
    "SyncStopResponse",
    "TenantDeactivateResponse",
    "TenantProvisionResponse",
    "TenantResponse",
]
