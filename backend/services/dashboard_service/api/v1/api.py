"""
API Router Aggregation for Dashboard Service v1

This module aggregates all API endpoint routers for version 1 of the dashboard
service API into a single router included by the FastAPI application.

The v1 API provides the following endpoint groups:
    - Tenants
        - POST /tenants: Provision a tenant
        - GET /tenants/{username}: Directory record of a tenant
        - POST /tenants/{username}/deactivate: Deactivate a tenant
    - Owner
        - GET /owner/domain: Tenant owning the requesting identity
    - Customer sync
        - POST /external-accounts/{account_id}/customers/sync
        - POST /external-accounts/{account_id}/customers/sync/stop
        - GET /external-accounts/{account_id}/customers/sync-progress
    - Health
        - GET /health/database: Master database probe

Example:
    ```python
    from services.dashboard_service.api.v1.api import api_router

    app.include_router(api_router, prefix="/api/v1")
    ```

Attributes:
    api_router (APIRouter): FastAPI router containing all v1 dashboard endpoints
"""

from fastapi import APIRouter

from services.dashboard_service.api.v1.endpoints import health, owner, sync, tenants

api_router = APIRouter()

# Tags are used for organizing endpoints in Swagger/OpenAPI documentation
api_router.include_router(tenants.router, tags=["tenants"])
api_router.include_router(owner.router, tags=["owner"])
api_router.include_router(sync.router, tags=["customer-sync"])
api_router.include_router(health.router, tags=["health"])
