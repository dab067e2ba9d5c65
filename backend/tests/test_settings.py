"""
Tests for settings loading and validation.
"""

import pytest
from pydantic import ValidationError

from ftth_common.config import BaseServiceSettings, DashboardServiceSettings, get_settings


class TestGetSettings:
    def test_dashboard_service(self):
        settings = get_settings("dashboard-service")

        assert isinstance(settings, DashboardServiceSettings)
        assert settings.SERVICE_NAME == "dashboard-service"
        assert settings.ALWATANI_PAGE_SIZE == 100

    def test_fuzzy_match(self):
        assert isinstance(get_settings("Dashboard"), DashboardServiceSettings)

    @pytest.mark.parametrize("service_name", [None, "", "init-master-db"])
    def test_base_settings(self, service_name):
        settings = get_settings(service_name)
        assert type(settings) is BaseServiceSettings

    def test_tenancy_defaults(self):
        settings = BaseServiceSettings()

        assert settings.MASTER_DATABASE_NAME == "ftth_master"
        assert settings.TENANT_DATABASE_PREFIX == "tenant_"
        assert settings.EXTERNAL_DATABASE_PREFIX == "alwatani_"
        assert settings.POSTGRES_ADMIN_DATABASE == "postgres"


class TestValidation:
    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("DATABASE_POOL_SIZE", "12")
        monkeypatch.setenv("MASTER_DATABASE_NAME", "ftth_master_test")

        settings = BaseServiceSettings()

        assert settings.DATABASE_POOL_SIZE == 12
        assert settings.MASTER_DATABASE_NAME == "ftth_master_test"

    def test_negative_pool_size(self):
        with pytest.raises(ValidationError, match="DATABASE_POOL_SIZE"):
            BaseServiceSettings(DATABASE_POOL_SIZE=-1)

    def test_non_numeric_timeout(self):
        with pytest.raises(ValidationError, match="DATABASE_CONNECT_TIMEOUT"):
            BaseServiceSettings(DATABASE_CONNECT_TIMEOUT="soon")

    @pytest.mark.parametrize("prefix", ["1tenant_", "Tenant_", "tenant-"])
    def test_invalid_prefix(self, prefix):
        with pytest.raises(ValidationError):
            BaseServiceSettings(TENANT_DATABASE_PREFIX=prefix)

    def test_cors_origins_from_comma_separated_string(self):
        settings = BaseServiceSettings(CORS_ORIGINS="https://a.example, https://b.example,")
        assert settings.CORS_ORIGINS == ["https://a.example", "https://b.example"]
