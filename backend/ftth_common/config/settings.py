"""
Centralized configuration management for the FTTH control deck backend.

This module defines Pydantic Settings classes for managing configuration across
the backend services. It provides a hierarchical settings system with base settings
shared by all services and service-specific overrides.

Configuration Loading:
    Settings are loaded in the following priority order (highest to lowest):
    1. Environment variables
    2. .env file in the project root
    3. Default values defined in the classes

Validation:
    All settings are validated using Pydantic validators to ensure:
    - Type correctness
    - Value constraints (e.g., non-negative pool sizes)
    - Format requirements (e.g., CORS origins parsing, database name prefixes)

Service Settings Hierarchy:
    BaseServiceSettings (base class)
    └── DashboardServiceSettings

Example:
    ```python
    from ftth_common.config.settings import DashboardServiceSettings

    settings = DashboardServiceSettings()
    print(settings.SERVICE_NAME)  # "dashboard-service"
    print(settings.MASTER_DATABASE_NAME)  # "ftth_master"
    ```

Environment Variables:
    All settings can be overridden via environment variables. For example:
    - POSTGRES_HOST=db.internal
    - MASTER_DATABASE_NAME=ftth_master
    - LOG_LEVEL=DEBUG
    - CORS_ORIGINS=http://localhost:3000,https://deck.example.com
"""

import re
from typing import Any

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Database name prefixes must themselves be valid identifier starts
DATABASE_PREFIX_PATTERN = re.compile(r"^[a-z_][a-z0-9_]*$")


class BaseServiceSettings(BaseSettings):
    """
    Base settings class providing common configuration for all services.

    Attributes:
        SERVICE_NAME (str): Name identifier for the service. Default: "base-service"
        SERVICE_VERSION (str): Version string for the service. Default: "0.1.0"
        PORT (int): Port number the service listens on. Default: 8000

        ENVIRONMENT (str): Deployment environment. Values: "DEV" or "PROD". Default: "DEV"
        DEBUG (bool): Enable debug mode. Default: False
        LOG_LEVEL (str): Logging level. Default: "INFO"

        API_V1_STR (str): API version prefix for routes. Default: "/api/v1"
        CORS_ORIGINS (list[str]): Allowed CORS origins, comma-separated or list.

        POSTGRES_HOST / POSTGRES_PORT / POSTGRES_USER / POSTGRES_PASSWORD:
            Connection parameters shared by the master and every tenant database.
        POSTGRES_ADMIN_DATABASE (str): Maintenance database used for CREATE/DROP
            DATABASE statements. Default: "postgres"
        MASTER_DATABASE_NAME (str): Database holding the tenant directory.
        TENANT_DATABASE_PREFIX (str): Prefix of every tenant database name.
        EXTERNAL_DATABASE_PREFIX (str): Prefix of every external-account database name.

        DATABASE_POOL_SIZE (int): Connections kept per tenant pool. Default: 5
        DATABASE_MAX_OVERFLOW (int): Overflow connections per pool. Default: 5
        DATABASE_POOL_TIMEOUT (int): Seconds to wait for a pooled connection. Default: 30
        DATABASE_POOL_RECYCLE (int): Seconds before a connection is recycled. Default: 3600
        DATABASE_CONNECT_TIMEOUT (int): Seconds before a connect attempt fails. Default: 10

    Note:
        - Pools are per database, so the effective connection ceiling is
          (DATABASE_POOL_SIZE + DATABASE_MAX_OVERFLOW) * number of cached pools
        - CORS_ORIGINS can be set as a comma-separated string or a list
    """

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Service Information (defaults)
    SERVICE_NAME: str = "base-service"
    SERVICE_VERSION: str = "0.1.0"
    PORT: int = 8000

    # Global Configuration
    ENVIRONMENT: str = "DEV"  # Can be "DEV" or "PROD"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # API Configuration
    API_V1_STR: str = "/api/v1"

    # CORS Configuration
    CORS_ORIGINS: Any = ""

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Any) -> list[str]:
        """
        Assemble CORS origins from string or list format.

        Accepts a comma-separated string, a list of strings, or an empty value.
        Whitespace is stripped and empty entries are dropped.
        """
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, list):
            return v
        return []

    # PostgreSQL Configuration
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_ADMIN_DATABASE: str = "postgres"

    # Tenancy Configuration
    MASTER_DATABASE_NAME: str = "ftth_master"
    TENANT_DATABASE_PREFIX: str = "tenant_"
    EXTERNAL_DATABASE_PREFIX: str = "alwatani_"

    # Database Pool Configuration
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 5
    DATABASE_POOL_TIMEOUT: int = 30
    DATABASE_POOL_RECYCLE: int = 3600
    DATABASE_CONNECT_TIMEOUT: int = 10
    DATABASE_ECHO: bool = False

    @field_validator(
        "DATABASE_POOL_SIZE",
        "DATABASE_MAX_OVERFLOW",
        "DATABASE_POOL_TIMEOUT",
        "DATABASE_POOL_RECYCLE",
        "DATABASE_CONNECT_TIMEOUT",
        mode="before",
    )
    @classmethod
    def validate_positive_int(cls, v: Any, info: ValidationInfo) -> int | None:
        """
        Validate that database pool configuration fields are non-negative integers.

        Accepts string input (common when loading from environment variables) and
        converts it. None is returned as-is.

        Raises:
            ValueError: If the value cannot be converted to an integer or is negative.
        """
        if v is None:
            return None
        try:
            int_val = int(v)
        except (ValueError, TypeError) as e:
            msg = f"{info.field_name} must be a valid positive integer, got: {v}"
            raise ValueError(msg) from e
        if int_val < 0:
            msg = f"{info.field_name} must be a positive integer"
            raise ValueError(msg)
        return int_val

    @field_validator("TENANT_DATABASE_PREFIX", "EXTERNAL_DATABASE_PREFIX")
    @classmethod
    def validate_database_prefix(cls, v: str, info: ValidationInfo) -> str:
        """
        Ensure database name prefixes start with a letter or underscore.

        Derived database names are ``prefix + cleaned_name``; a prefix that could
        start with a digit or contain uppercase would produce identifiers that
        need quoting and would break the "never starts with a digit" guarantee.
        """
        if not DATABASE_PREFIX_PATTERN.match(v):
            msg = f"{info.field_name} must match {DATABASE_PREFIX_PATTERN.pattern}, got: {v!r}"
            raise ValueError(msg)
        return v


class DashboardServiceSettings(BaseServiceSettings):
    """
    Settings configuration for the dashboard service.

    Inherited Attributes:
        All attributes from BaseServiceSettings are available with these overrides:
        - SERVICE_NAME: "dashboard-service"
        - PORT: 3000

    Additional Attributes:
        ALWATANI_BASE_URL (str): Base URL of the upstream FTTH partner portal API.
        ALWATANI_PAGE_SIZE (int): Page size used when paging through customers.
        ALWATANI_TIMEOUT_SECONDS (float): Per-request timeout for upstream calls.
        SYNC_PAGE_DELAY_SECONDS (float): Pause between paginated fetches during a
            customer sync. Cancellation is checked at each of these checkpoints.
    """

    SERVICE_NAME: str = "dashboard-service"
    PORT: int = 3000

    # Upstream partner portal
    ALWATANI_BASE_URL: str = "https://admin.ftth.iq"
    ALWATANI_PAGE_SIZE: int = 100
    ALWATANI_TIMEOUT_SECONDS: float = 15.0
    SYNC_PAGE_DELAY_SECONDS: float = 0.0
