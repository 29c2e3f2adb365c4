"""SQLModel models for ledgers and bookkeeping rows (stock movements, counters, transactions, logs)."""
from typing import Optional
import datetime as dt
from datetime import datetime
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field

from ricemill.models.common import LifecycleStatus, utcnow


class StockMovement(SQLModel, table=True):
    """
    Append-only inventory row, one per posted line item.

    Rows are never edited. Item replacement appends ``reversal`` rows that
    offset the old lines before the new lines are booked.
    """

    __tablename__ = "stock_movements"

    id: Optional[int] = Field(default=None, primary_key=True)
    date: dt.date = Field(index=True)
    product_id: int = Field(foreign_key="products.id", index=True)
    category_id: Optional[int] = Field(default=None, foreign_key="categories.id", index=True)
    godown_id: Optional[int] = Field(default=None, foreign_key="godowns.id", index=True)
    silo_id: Optional[int] = Field(default=None, foreign_key="silos.id", index=True)

    movement_type: str = Field(index=True)  # purchase | sale | production | reversal
    reference_type: str = Field(index=True)  # purchase | sale | production
    reference_id: int = Field(index=True)

    quantity_in: float = Field(default=0.0)
    quantity_out: float = Field(default=0.0)
    weight_in: float = Field(default=0.0)
    weight_out: float = Field(default=0.0)
    rate: float = Field(default=0.0)
    remarks: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class SequenceCounter(SQLModel, table=True):
    """Per (document type, period) counter behind human-readable reference numbers."""

    __tablename__ = "sequence_counters"
    __table_args__ = (UniqueConstraint("doc_type", "period", name="uq_sequence_doc_type_period"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    doc_type: str = Field(index=True)
    period: str = Field(index=True)
    value: int = Field(default=0)
    updated_at: datetime = Field(default_factory=utcnow)


class AccountTransaction(SQLModel, table=True):
    """Cash/bank receive or payment posted against account heads."""

    __tablename__ = "transactions"

    id: Optional[int] = Field(default=None, primary_key=True)
    date: dt.date = Field(index=True)
    type: str = Field(index=True)  # receive | payment
    party_id: Optional[int] = Field(default=None, foreign_key="parties.id", index=True)
    from_head_id: Optional[int] = Field(default=None, foreign_key="account_heads.id", index=True)
    to_head_id: Optional[int] = Field(default=None, foreign_key="account_heads.id", index=True)
    amount: float = Field(default=0.0)
    description: Optional[str] = None
    reference_no: Optional[str] = None
    status: str = Field(default=LifecycleStatus.ACTIVE.value, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ReportPrintLog(SQLModel, table=True):
    """Audit row written when a report is printed or exported."""

    __tablename__ = "report_print_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    report_type: str = Field(index=True)
    report_date: Optional[dt.date] = None
    printed_by: Optional[str] = None
    printed_at: datetime = Field(default_factory=utcnow)


class AuthSession(SQLModel, table=True):
    """Login session issued by the auth service; the API only validates it."""

    __tablename__ = "auth_sessions"

    id: Optional[int] = Field(default=None, primary_key=True)
    token: str = Field(index=True, unique=True)
    username: str
    expires_at: datetime
    revoked: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)


class PartyPayment(SQLModel, table=True):
    """
    Money paid to or received from a party outside an invoice.

    A payment raises the party's running balance (the mill owes less or the
    party owes more), a receive lowers it. Posted once, like documents.
    """

    __tablename__ = "party_payments"

    id: Optional[int] = Field(default=None, primary_key=True)
    date: dt.date = Field(index=True)
    type: str = Field(index=True)  # receive | payment
    head_id: Optional[int] = Field(default=None, foreign_key="account_heads.id", index=True)
    party_id: int = Field(foreign_key="parties.id", index=True)
    amount: float = Field(default=0.0)
    description: Optional[str] = None
    reference_no: Optional[str] = None
    created_by: Optional[str] = None
    balance_applied: bool = Field(default=False)
    status: str = Field(default=LifecycleStatus.ACTIVE.value, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class EmptyBagEntry(SQLModel, table=True):
    """
    Empty-bag trade: bags bought, sold, received back or handed out.

    ``purchase`` and ``receive`` bring bags in; ``sale`` and ``payment``
    send them out. Bag stock is the running sum of these rows.
    """

    __tablename__ = "emptybag_entries"
    __table_args__ = (UniqueConstraint("entry_type", "reference_no", name="uq_emptybag_type_reference"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    entry_type: str = Field(index=True)  # purchase | sale | receive | payment
    date: dt.date = Field(index=True)
    reference_no: str = Field(index=True)
    party_id: Optional[int] = Field(default=None, foreign_key="parties.id", index=True)
    product_id: Optional[int] = Field(default=None, foreign_key="products.id", index=True)
    bags: int = Field(default=0)
    quantity: float = Field(default=0.0)
    rate: float = Field(default=0.0)
    amount: float = Field(default=0.0)
    payment_mode: Optional[str] = None
    payment_reference: Optional[str] = None
    description: Optional[str] = None
    status: str = Field(default=LifecycleStatus.ACTIVE.value, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
