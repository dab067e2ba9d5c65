"""
External-account models - data mirrored from one partner-portal account.
"""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, TIMESTAMP, BigInteger, Date, Integer, Numeric, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from ftth_common.database.base import ExternalBase


class CustomerCache(ExternalBase):
    __tablename__ = "alwatani_customers_cache"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    username: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    device_name: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(20), index=True)
    region: Mapped[Optional[str]] = mapped_column(String(255))
    page_url: Mapped[Optional[str]] = mapped_column(Text)
    start_date: Mapped[Optional[date]] = mapped_column(Date)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    status: Mapped[Optional[str]] = mapped_column(String(50), index=True)


class WalletTransaction(ExternalBase):
    __tablename__ = "wallet_transactions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    transaction_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    partner_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    transaction_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    transaction_type: Mapped[Optional[str]] = mapped_column(String(100))
    transaction_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2))
    occured_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))
    synced_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=text("NOW()")
    )


class SlaTicket(ExternalBase):
    __tablename__ = "sla_tickets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sla_ticket_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    ticket_number: Mapped[Optional[str]] = mapped_column(String(100))
    title: Mapped[Optional[str]] = mapped_column(String(500))
    description: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    priority: Mapped[Optional[str]] = mapped_column(String(50))
    customer_name: Mapped[Optional[str]] = mapped_column(String(255))
    customer_id: Mapped[Optional[str]] = mapped_column(String(255))
    assigned_to: Mapped[Optional[str]] = mapped_column(String(255))
    team: Mapped[Optional[str]] = mapped_column(String(255))
    # Upstream timestamps; created_at/updated_at belong to the local row
    ticket_created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))
    ticket_updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))
    sla_data: Mapped[Optional[dict]] = mapped_column(JSON)
    synced_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=text("NOW()")
    )
