"""
Common ORM models and records for the backend.

Models are organized by the database they live in:

1. Master Models (MasterBase): the tenant directory
   - TenantDirectory

2. Tenant Models (TenantBase): present in every tenant database
   - User, AlwataniLogin, DashboardUser, Subscriber, Ticket, Team,
     TeamMember, ImportedAccount, TenantCustomerCache, TenantWalletTransaction

3. External-Account Models (ExternalBase): one database per linked account
   - CustomerCache, WalletTransaction, SlaTicket

4. Records (Pydantic): values returned by the tenancy layer
   - TenantRecord, ExternalAccountLink, TenantProvisionRequest

Schema creation lives in ftth_common.models.schema.

Usage:
    ```python
    from ftth_common.models import TenantRecord, User
    from ftth_common.models.schema import create_tenant_schema

    await create_tenant_schema("tenant_acme")
    ```
"""

from .external import CustomerCache, SlaTicket, WalletTransaction
from .master import TenantDirectory
from .records import ExternalAccountLink, TenantProvisionRequest, TenantRecord
from .tenant import (
    AlwataniLogin,
    DashboardUser,
    ImportedAccount,
    Subscriber,
    Team,
    TeamMember,
    TenantCustomerCache,
    TenantWalletTransaction,
    Ticket,
    User,
)

__all__ = [
    # Tenant models (SQLAlchemy ORM)
    "AlwataniLogin",
    # External-account models (SQLAlchemy ORM)
    "CustomerCache",
    "DashboardUser",
    # Records (Pydantic)
    "ExternalAccountLink",
    "ImportedAccount",
    "SlaTicket",
    "Subscriber",
    "Team",
    "TeamMember",
    "TenantCustomerCache",
    # Master models (SQLAlchemy ORM)
    "TenantDirectory",
    "TenantProvisionRequest",
    "TenantRecord",
    "TenantWalletTransaction",
    "Ticket",
    "User",
    "WalletTransaction",
]
