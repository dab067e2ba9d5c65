"""
Common FastAPI utilities and middleware.

Main Components:
    - app_factory: FastAPI application factory with standard configuration,
      the tenancy error envelope, and an optional lifespan hook

Usage:
    ```python
    from ftth_common.fastapi import create_fastapi_app

    app = create_fastapi_app(
        service_name="dashboard-service",
        description="FTTH control deck dashboard API",
        api_router=api_router,
        lifespan=lifespan,
    )
    ```
"""
from .app_factory import create_fastapi_app

__all__ = ["create_fastapi_app"]
