from __future__ import annotations

import uuid
import datetime as dt
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.db import Base


# -------------------------
# Helpers
# -------------------------

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def uuid_str() -> str:
    return str(uuid.uuid4())


def Money():
    # Stored as fixed-point, handed back to Python as float.
    return Numeric(12, 2, asdecimal=False)


TRANSACTION_TYPES = ("income", "expense")
OBLIGATION_STATUSES = ("pending", "overdue", "paid")
RECURRING_FREQUENCIES = ("weekly", "biweekly", "monthly")
AUDIT_ACTIONS = ("create", "update", "delete", "system")


# -------------------------
# Ledger
# -------------------------

class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_space_date", "space_id", "date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=uuid_str)
    space_id: Mapped[str] = mapped_column(String(64), nullable=False)

    type: Mapped[str] = mapped_column(String(10), nullable=False)  # income/expense
    amount: Mapped[float] = mapped_column(Money(), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(80), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


# -------------------------
# Payables
# -------------------------

class Obligation(Base):
    """
    One-off payable. `amount` is always the REMAINING balance, not the original.
    """
    __tablename__ = "obligations"
    __table_args__ = (
        Index("ix_obligations_space_due", "space_id", "due_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=uuid_str)
    space_id: Mapped[str] = mapped_column(String(64), nullable=False)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[float] = mapped_column(Money(), nullable=False)
    due_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="pending",
        server_default=text("'pending'"),
    )
    category: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    minimum_payment: Mapped[Optional[float]] = mapped_column(Money(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )


class Debt(Base):
    """
    Installment plan. remaining_installments <= total_installments.
    """
    __tablename__ = "debts"
    __table_args__ = (
        Index("ix_debts_space_next_payment", "space_id", "next_payment_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=uuid_str)
    space_id: Mapped[str] = mapped_column(String(64), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    total_amount: Mapped[float] = mapped_column(Money(), nullable=False)
    monthly_payment: Mapped[float] = mapped_column(Money(), nullable=False)
    remaining_installments: Mapped[int] = mapped_column(Integer, nullable=False)
    total_installments: Mapped[int] = mapped_column(Integer, nullable=False)
    next_payment_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    category: Mapped[str] = mapped_column(String(80), nullable=False, default="Deudas")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )


# -------------------------
# Planning
# -------------------------

class RecurringTransaction(Base):
    __tablename__ = "recurring_transactions"
    __table_args__ = (
        Index("ix_recurring_space_next_run", "space_id", "next_run"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=uuid_str)
    space_id: Mapped[str] = mapped_column(String(64), nullable=False)

    type: Mapped[str] = mapped_column(String(10), nullable=False)
    amount: Mapped[float] = mapped_column(Money(), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(80), nullable=False)
    frequency: Mapped[str] = mapped_column(String(16), nullable=False)
    start_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    next_run: Mapped[dt.date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )


class Budget(Base):
    """
    Monthly spend limit per category. Usage is derived, never stored.
    """
    __tablename__ = "budgets"
    __table_args__ = (
        UniqueConstraint("space_id", "category", "month", name="uq_budgets_space_category_month"),
        Index("ix_budgets_space_month", "space_id", "month"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=uuid_str)
    space_id: Mapped[str] = mapped_column(String(64), nullable=False)

    category: Mapped[str] = mapped_column(String(80), nullable=False)
    month: Mapped[str] = mapped_column(String(7), nullable=False)  # YYYY-MM
    limit_amount: Mapped[float] = mapped_column(Money(), nullable=False)
    alert_threshold: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=80,
        server_default=text("80"),
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )


# -------------------------
# Audit
# -------------------------

class AuditEvent(Base):
    """
    Append-only record of financial mutations. Written best-effort.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        Index("ix_audit_events_space_created", "space_id", "created_at"),
        Index("ix_audit_events_entity", "entity_type", "entity_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=uuid_str)
    space_id: Mapped[str] = mapped_column(String(64), nullable=False)

    entity_type: Mapped[str] = mapped_column(String(60), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(120), nullable=False)
    action: Mapped[str] = mapped_column(String(10), nullable=False)

    before_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    after_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    metadata_json: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
