"""
Declarative bases for the three database kinds.

Every tenant lives in its own database and every linked external account has
its own database too, so the ORM metadata is split three ways. Creating the
schema of one kind never touches tables of another:

    MasterBase    -> ftth_master            (tenant_directory)
    TenantBase    -> tenant_<domain>        (users, alwatani_login, ...)
    ExternalBase  -> alwatani_<username>    (customers cache, wallet, SLA tickets)

Features:
    - Automatic timestamp tracking (created_at, updated_at)
    - Timezone-aware timestamps with server-side defaults

Usage:
    ```python
    from ftth_common.database.base import TenantBase
    from sqlalchemy.orm import Mapped, mapped_column
    from sqlalchemy import String

    class Team(TenantBase):
        __tablename__ = "teams"

        id: Mapped[int] = mapped_column(primary_key=True)
        name: Mapped[str] = mapped_column(String(255))
    ```
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import TIMESTAMP, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class TimestampMixin:
    """
    Columns shared by every table.

    Attributes:
        created_at (Mapped[datetime]): Set by the database server using NOW().
        updated_at (Mapped[datetime]): Set by the database server using NOW()
            and bumped by the ORM on update.
    """

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=text("NOW()")
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=text("NOW()"), onupdate=text("NOW()")
    )


class MasterBase(TimestampMixin, DeclarativeBase):
    """Base for tables of the master directory database."""


class TenantBase(TimestampMixin, DeclarativeBase):
    """Base for tables created in every tenant database."""


class ExternalBase(TimestampMixin, DeclarativeBase):
    """Base for tables created in every external-account database."""
