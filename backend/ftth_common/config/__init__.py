"""
Centralized configuration management for all backend services.

The configuration system uses Pydantic Settings, which automatically loads values from:
    1. Environment variables (highest priority)
    2. .env file in the project root
    3. Default values defined in the settings classes

Service-Specific Settings:
    - DashboardServiceSettings: Configuration for dashboard-service
    - BaseServiceSettings: Base configuration shared by all services and scripts

Example:
    ```python
    from ftth_common.config import get_settings

    settings = get_settings("dashboard-service")
    print(settings.SERVICE_NAME)  # "dashboard-service"
    print(settings.MASTER_DATABASE_NAME)  # "ftth_master"
    ```
"""

from ftth_common.config.settings import (
    BaseServiceSettings,
    DashboardServiceSettings,
)


def get_settings(service_name: str | None = None) -> BaseServiceSettings:
    """
    Get settings instance for the specified service.

    Performs fuzzy matching on the service name, so "dashboard" matches
    "dashboard-service". Anything else (including None) returns
    BaseServiceSettings.

    Note:
        - Settings are loaded from environment variables and .env file
        - Each call returns a new instance (settings are not cached)
        - Service name matching is case-insensitive
    """
    if service_name:
        service_lower = service_name.lower()
        if service_lower == "dashboard-service" or "dashboard" in service_lower:
            return DashboardServiceSettings()
    # Default to base settings
    return BaseServiceSettings()


__all__ = [
    "BaseServiceSettings",
    "DashboardServiceSettings",
    "get_settings",
]
