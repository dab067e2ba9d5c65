"""
Database Health Endpoint

    GET /health/database
        Probe the master directory and report the cached pool counts. Answers
        503 with the error envelope when the master database is unreachable.
"""

from fastapi import APIRouter
from sqlalchemy.exc import SQLAlchemyError

from ftth_common.database import PoolNamespace
from ftth_common.exceptions import (
    ConnectionFailure,
    create_api_error,
    handle_database_error,
)
from services.dashboard_service.api.dependencies import Registry
from services.dashboard_service.api.v1.models import DatabaseHealthResponse

router = APIRouter()


@router.get("/health/database", response_model=DatabaseHealthResponse)
async def database_health(registry: Registry) -> DatabaseHealthResponse:
    master_database = registry.settings.MASTER_DATABASE_NAME
    try:
        await registry.directory.ping()
    except ConnectionFailure as e:
        raise create_api_error(
            operation="database health check",
            status_code=503,
            internal_error=e,
            user_message=f"Master database '{master_database}' is unreachable",
        ) from e
    except SQLAlchemyError as e:
        raise handle_database_error("database health check", e) from e

    return DatabaseHealthResponse(
        status="healthy",
        master_database=master_database,
        tenant_pools=len(registry.pools.keys(PoolNamespace.TENANT)),
        external_pools=len(registry.pools.keys(PoolNamespace.EXTERNAL)),
    )
