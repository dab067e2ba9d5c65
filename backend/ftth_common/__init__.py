"""
Common utilities and shared code for the FTTH control deck backend.

This package provides the multi-tenant core used by the dashboard service and
the operator scripts. It includes:

Modules:
    - config: Centralized configuration management with environment-based settings
    - database: Engines, pool cache, master directory, resolution and provisioning
    - exceptions: Tenancy error taxonomy and API error helpers
    - fastapi: FastAPI application factory with common middleware and configuration
    - logging: Centralized logging configuration using loguru
    - models: SQLAlchemy ORM models for master, tenant and external databases
    - registry: The explicitly owned object holding all process-wide tenancy state
    - security: Password hashing
    - sync_progress: Progress and cancellation tracking for sync jobs

Tenant Isolation:
    Each tenant has a dedicated PostgreSQL database named after its domain.
    A master database holds the tenant directory. No query crosses tenants
    except the resolver's explicit scan.

Usage:
    ```python
    from ftth_common.config import get_settings
    from ftth_common.logging import setup_logging
    from ftth_common.registry import TenancyRegistry
    ```

Version:
    Current version: 0.1.0
"""

__version__ = "0.1.0"
