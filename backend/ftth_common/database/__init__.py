"""
Database utilities for the tenant-isolated architecture.

Every tenant has a dedicated PostgreSQL database, every linked external account
has one too, and a single master database lists the tenants. This package
holds everything needed to find, create and connect to them.

Main Components:
    - base: Declarative bases for master, tenant and external-account tables
    - session: URLs, pooled engines, CREATE/DROP DATABASE
    - tenant_naming: Domain and database name derivation
    - pool_cache: One cached engine per tenant / external account
    - master_directory: The tenant_directory table in the master database
    - tenant_resolver: Request identity -> tenant record / pool
    - tenant_provisioning: Creating tenant and external-account databases

The higher-level classes (MasterDirectory, TenantResolver, TenantProvisioner)
are imported from their own modules.

Usage:
    ```python
    from ftth_common.database import derive_database_name

    db_name = derive_database_name("Acme-2")
    # Returns: "tenant_acme_2"
    ```
"""

from .base import ExternalBase, MasterBase, TenantBase
from .pool_cache import PoolCache, PoolNamespace
from .session import (
    create_database,
    create_pool_engine,
    create_sqlalchemy_url,
    drop_database,
    ping_engine,
)
from .tenant_naming import (
    derive_database_name,
    derive_external_database_name,
    get_domain_from_username,
)

__all__ = [
    # Bases
    "ExternalBase",
    "MasterBase",
    # Pool cache
    "PoolCache",
    "PoolNamespace",
    "TenantBase",
    # Database utilities
    "create_database",
    "create_pool_engine",
    "create_sqlalchemy_url",
    # Naming
    "derive_database_name",
    "derive_external_database_name",
    "drop_database",
    "get_domain_from_username",
    "ping_engine",
]
