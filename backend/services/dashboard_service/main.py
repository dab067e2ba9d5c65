"""
Dashboard Service - FastAPI Application Entrypoint

This module serves as the main entry point for the Dashboard Service, the
backend of the FTTH control deck. It routes every request to the database of
the tenant it belongs to and runs customer syncs of linked partner-portal
accounts.

It provides RESTful APIs for:

- Tenant provisioning, lookup and deactivation
- Resolving an identity to its owning tenant
- Starting, stopping and following background customer syncs
- Database health

Lifespan:
    Startup creates the TenancyRegistry (master directory, pool cache, sync
    tracker), makes sure the master database and its directory table exist,
    and stores the registry and the CustomerSyncService on ``app.state``.
    Shutdown asks running syncs to stop, then closes every cached pool and the
    master pool.

Example:
    To run the service locally:
        ```bash
        uv run uvicorn services.dashboard_service:app --port 8000 --reload
        ```

    The service will be available at:
        - API Base: http://localhost:8000/api/v1
        - Swagger UI: http://localhost:8000/docs
        - Health Check: http://localhost:8000/health

Attributes:
    app (FastAPI): The FastAPI application instance configured with:
        - Service name: "dashboard-service"
        - Root path: "/dashboard" (for reverse proxy routing)
        - API router: Includes all v1 dashboard endpoints
        - Standard middleware: CORS, logging, error handling

See Also:
    - services.dashboard_service.api.v1.api: API router definitions
    - services.dashboard_service.services.customer_sync: Customer sync jobs
    - ftth_common.registry: Process-wide tenancy state
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from ftth_common.config import get_settings
from ftth_common.fastapi import create_fastapi_app
from ftth_common.registry import TenancyRegistry
from services.dashboard_service.api.v1.api import api_router
from services.dashboard_service.services.customer_sync import CustomerSyncService

SERVICE_NAME = "dashboard-service"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings(SERVICE_NAME)
    registry = TenancyRegistry(settings)
    await registry.start()

    app.state.registry = registry
    app.state.customer_sync = CustomerSyncService(registry, settings)
    logger.info(f"{SERVICE_NAME} ready (master database '{settings.MASTER_DATABASE_NAME}')")

    try:
        yield
    finally:
        await app.state.customer_sync.shutdown()
        await registry.close()
        logger.info(f"{SERVICE_NAME} stopped")


# The root_path="/dashboard" ensures proper routing behind the reverse proxy
# In development (ENVIRONMENT=DEV), root_path is automatically set to ""
app = create_fastapi_app(
    service_name=SERVICE_NAME,
    description="FTTH control deck dashboard API with per-tenant database routing",
    api_router=api_router,
    root_path="/dashboard",
    lifespan=lifespan,
)
