"""
Dashboard Service Package

This package provides the Dashboard Service of the FTTH control deck. It exports
the FastAPI application instance for use with ASGI servers like Uvicorn.

The package structure:
    - main.py: FastAPI application entrypoint and lifespan
    - api/: API layer with endpoints, models and request dependencies
    - clients/: Partner portal (Alwatani) HTTP client
    - services/: Business logic layer (customer sync)

Usage:
    ```python
    from services.dashboard_service import app

    # Run with uvicorn
    # uvicorn services.dashboard_service:app --port 8000
    ```

Exports:
    app: FastAPI application instance configured for the dashboard service
"""

from services.dashboard_service.main import app

__all__ = ["app"]
