"""
Common FastAPI application factory with standard middleware and configuration.

This module provides a factory function for creating FastAPI applications with
consistent configuration, middleware, and error handling.

Features:
    - Automatic logging setup
    - CORS configuration (environment-aware)
    - Request timing middleware
    - Lifespan hook for process-wide state (the tenancy registry)
    - API errors mapped to their HTTP status with the JSON error envelope
    - Health check endpoints
    - OpenAPI documentation

Error Envelope:
    Every failure answered by the handlers registered here has the body
    ``{"success": false, "error": "<message>"}``. APIError subclasses (the
    tenancy errors among them) keep their own status (404, 409, 400, 503, ...),
    HTTPException keeps its status and detail, request validation failures are
    422, and anything unhandled becomes a 500 with a generic message.

Endpoints:
    - GET /: Root endpoint with service information
    - GET /health: Health check endpoint
    - GET /docs: Swagger UI documentation
    - GET /redoc: ReDoc documentation

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

from collections.abc import Callable
import time
from typing import Any

from fastapi import APIRouter, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from ftth_common.config import BaseServiceSettings, get_settings
from ftth_common.exceptions import APIError, error_envelope
from ftth_common.logging import setup_logging


def create_fastapi_app(
    service_name: str,
    description: str,
    api_router: APIRouter | None = None,
    additional_setup: Callable[[FastAPI, BaseServiceSettings], None] | None = None,
    root_path: str = "",
    lifespan: Callable[[FastAPI], Any] | None = None,
) -> FastAPI:
    """
    Create a FastAPI application with standardized configuration and middleware.

    Args:
        service_name: Name of the service (e.g., "dashboard-service").
            Used to load service-specific settings and configure logging.
        description: Human-readable description of the service, used in the
            OpenAPI documentation.
        api_router: Optional APIRouter. Included with the API_V1_STR prefix
            (default: "/api/v1").
        additional_setup: Optional callback run after the standard
            configuration. Signature: `(app, settings) -> None`.
        root_path: Optional root path for reverse proxy scenarios. Ignored in
            the DEV environment.
        lifespan: Optional async context manager factory passed to FastAPI.
            Services use it to create the tenancy registry at startup and close
            every pool at shutdown.

    Returns:
        Fully configured FastAPI application instance ready to run.

    Side Effects:
        - Configures logging for the service (via setup_logging)
        - Adds middleware to the application
        - Registers exception handlers
        - Creates health check and root endpoints
    """

    # Setup logging first
    setup_logging(service_name)

    # Get service settings
    settings = get_settings(service_name)

    # In development, root_path should be empty as we are not behind a reverse proxy
    effective_root_path = root_path if settings.ENVIRONMENT != "DEV" else ""

    app = FastAPI(
        title=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
        description=description,
        openapi_url="/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        root_path=effective_root_path,
        lifespan=lifespan,
    )

    # Configure CORS
    if settings.ENVIRONMENT == "PROD":
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ORIGINS,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    else:
        # Note: allow_credentials=True is incompatible with allow_origins=["*"]
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ORIGINS
            or [
                "http://localhost:3000",
                "http://127.0.0.1:3000",
            ],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Add request timing middleware
    @app.middleware("http")
    async def add_process_time_header(
        request: Request, call_next: Callable[[Request], Any]
    ) -> Response:
        """Add process time header to responses."""
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        logger.info(
            f"{request.method} {request.url.path} - {response.status_code} - {process_time:.3f}s"
        )
        return response

    # Include API router if provided
    if api_router:
        app.include_router(api_router, prefix=settings.API_V1_STR)

    # Standard health check endpoint
    @app.get("/health")
    async def health_check() -> dict[str, Any]:
        """Health check endpoint."""
        return {
            "service": settings.SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "status": "healthy",
            "timestamp": time.time(),
        }

    # Standard root endpoint
    @app.get("/")
    async def root() -> dict[str, Any]:
        """Root endpoint."""
        return {
            "service": settings.SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "message": f"{settings.SERVICE_NAME} is running",
            "docs": "/docs",
            "health": "/health",
        }

    @app.exception_handler(APIError)
    async def api_error_handler(
        request: Request, exc: APIError
    ) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                f"{type(exc).__name__} in {request.method} {request.url.path}: {exc.message}"
                + (f" ({exc.internal_error})" if exc.internal_error else "")
            )
        else:
            logger.info(
                f"{type(exc).__name__} in {request.method} {request.url.path}: {exc.message}"
            )
        return JSONResponse(status_code=exc.status_code, content=error_envelope(exc.message))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=error_envelope(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else "Validation error"
        content = error_envelope(message)
        content["details"] = jsonable_encoder(
            [{key: value for key, value in error.items() if key != "ctx"} for error in errors]
        )
        return JSONResponse(status_code=422, content=content)

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.opt(exception=exc).error(
            f"Unhandled exception in {request.method} {request.url.path}: {exc}"
        )
        return JSONResponse(
            status_code=500,
            content=error_envelope(
                "An error occurred while processing your request. Please try again later."
            ),
        )

    # Run additional setup if provided
    if additional_setup:
        additional_setup(app, settings)

    return app
