"""
Customer Sync API Response Models

The progress record itself is ``SyncProgress`` from ``ftth_common.sync_progress``
and includes the derived ``percentage``.
"""

from pydantic import BaseModel, Field

from ftth_common.sync_progress import SyncProgress


class SyncStartResponse(BaseModel):
    """
    Response model for POST /external-accounts/{account_id}/customers/sync.

    Attributes:
        account_id (int): The linked external account.
        username (str): The partner-portal username of the account.
        tenant_domain (str | None): Domain of the tenant holding the link.
        progress (SyncProgress): Initial progress record, stage "login".
    """

    success: bool = True
    account_id: int
    username: str
    tenant_domain: str | None = None
    progress: SyncProgress


class SyncStopResponse(BaseModel):
    success: bool = True
    account_id: int
    running: bool = Field(..., description="Whether a sync was running when stop was requested")
    progress: SyncProgress


class SyncProgressResponse(BaseModel):
    success: bool = True
    account_id: int
    progress: SyncProgress | None = None
