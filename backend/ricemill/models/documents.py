"""
SQLModel models for posted documents: purchases, sales, production orders, salary runs.

Each document is a header plus owned line items. Header totals are always
derived from the items by ``ricemill.services.posting``; they are never
accepted from the client.
"""
from typing import Optional
import datetime as dt
from datetime import datetime
from sqlmodel import SQLModel, Field

from ricemill.models.common import DocumentStatus, utcnow


class Purchase(SQLModel, table=True):
    """Paddy or rice bought from a supplier."""

    __tablename__ = "purchases"

    id: Optional[int] = Field(default=None, primary_key=True)
    purchase_type: str = Field(default="paddy", index=True)  # paddy | rice
    date: dt.date = Field(index=True)
    reference_no: str = Field(index=True, unique=True)
    challan_no: Optional[str] = None
    party_id: int = Field(foreign_key="parties.id", index=True)
    transport_info: Optional[str] = None
    notes: Optional[str] = None

    # Totals
    total_quantity: float = Field(default=0.0)
    total_net_weight: float = Field(default=0.0)
    invoice_amount: float = Field(default=0.0)
    discount: float = Field(default=0.0)
    total_amount: float = Field(default=0.0)
    previous_balance: float = Field(default=0.0)
    net_payable: float = Field(default=0.0)
    paid_amount: float = Field(default=0.0)
    current_balance: float = Field(default=0.0)

    payment_mode: str = Field(default="cash")
    payment_reference: Optional[str] = None
    status: str = Field(default=DocumentStatus.COMPLETED.value, index=True)

    # Set once the counterparty balance has received this document's delta
    balance_applied: bool = Field(default=False)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class PurchaseItem(SQLModel, table=True):
    __tablename__ = "purchase_items"

    id: Optional[int] = Field(default=None, primary_key=True)
    purchase_id: int = Field(foreign_key="purchases.id", index=True)
    category_id: Optional[int] = Field(default=None, foreign_key="categories.id", index=True)
    product_id: int = Field(foreign_key="products.id", index=True)
    godown_id: Optional[int] = Field(default=None, foreign_key="godowns.id", index=True)
    quantity: float = Field(default=0.0)
    net_weight: float = Field(default=0.0)
    rate: float = Field(default=0.0)
    price_basis: str = Field(default="quantity")  # quantity | weight
    total_price: float = Field(default=0.0)
    created_at: datetime = Field(default_factory=utcnow)


class Sale(SQLModel, table=True):
    """Goods sold to a customer."""

    __tablename__ = "sales"

    id: Optional[int] = Field(default=None, primary_key=True)
    date: dt.date = Field(index=True)
    reference_no: str = Field(index=True, unique=True)
    party_id: int = Field(foreign_key="parties.id", index=True)
    transport_info: Optional[str] = None
    notes: Optional[str] = None

    # Totals
    total_quantity: float = Field(default=0.0)
    total_net_weight: float = Field(default=0.0)
    invoice_amount: float = Field(default=0.0)
    discount: float = Field(default=0.0)
    total_amount: float = Field(default=0.0)
    previous_balance: float = Field(default=0.0)
    net_receivable: float = Field(default=0.0)
    received_amount: float = Field(default=0.0)
    current_balance: float = Field(default=0.0)

    payment_mode: str = Field(default="cash")
    payment_reference: Optional[str] = None
    status: str = Field(default=DocumentStatus.COMPLETED.value, index=True)
    balance_applied: bool = Field(default=False)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class SaleItem(SQLModel, table=True):
    __tablename__ = "sale_items"

    id: Optional[int] = Field(default=None, primary_key=True)
    sale_id: int = Field(foreign_key="sales.id", index=True)
    category_id: Optional[int] = Field(default=None, foreign_key="categories.id", index=True)
    product_id: int = Field(foreign_key="products.id", index=True)
    godown_id: Optional[int] = Field(default=None, foreign_key="godowns.id", index=True)
    quantity: float = Field(default=0.0)
    net_weight: float = Field(default=0.0)
    rate: float = Field(default=0.0)
    price_basis: str = Field(default="quantity")
    total_price: float = Field(default=0.0)
    created_at: datetime = Field(default_factory=utcnow)


class Production(SQLModel, table=True):
    """Production order: milled output booked into godowns/silos."""

    __tablename__ = "productions"

    id: Optional[int] = Field(default=None, primary_key=True)
    date: dt.date = Field(index=True)
    reference_no: str = Field(index=True, unique=True)
    description: Optional[str] = None
    silo_info: Optional[str] = None
    total_quantity: float = Field(default=0.0)
    total_weight: float = Field(default=0.0)
    status: str = Field(default=DocumentStatus.ACTIVE.value, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ProductionItem(SQLModel, table=True):
    __tablename__ = "production_items"

    id: Optional[int] = Field(default=None, primary_key=True)
    production_id: int = Field(foreign_key="productions.id", index=True)
    category_id: Optional[int] = Field(default=None, foreign_key="categories.id", index=True)
    product_id: int = Field(foreign_key="products.id", index=True)
    godown_id: Optional[int] = Field(default=None, foreign_key="godowns.id", index=True)
    silo_id: Optional[int] = Field(default=None, foreign_key="silos.id", index=True)
    quantity: float = Field(default=0.0)
    net_weight: float = Field(default=0.0)
    created_at: datetime = Field(default_factory=utcnow)


class SalaryRun(SQLModel, table=True):
    """Monthly payroll sheet."""

    __tablename__ = "salary_runs"

    id: Optional[int] = Field(default=None, primary_key=True)
    date: dt.date = Field(index=True)
    year: int = Field(index=True)
    month: int = Field(index=True)
    reference_no: str = Field(index=True, unique=True)
    description: Optional[str] = None
    total_employees: int = Field(default=0)
    total_payable: float = Field(default=0.0)
    total_salary: float = Field(default=0.0)  # sum of payments made
    status: str = Field(default=DocumentStatus.ACTIVE.value, index=True)
    balance_applied: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class SalaryLine(SQLModel, table=True):
    """One employee's row on a salary sheet."""

    __tablename__ = "salary_lines"

    id: Optional[int] = Field(default=None, primary_key=True)
    salary_run_id: int = Field(foreign_key="salary_runs.id", index=True)
    employee_id: int = Field(foreign_key="employees.id", index=True)
    salary: float = Field(default=0.0)
    bonus_ot: float = Field(default=0.0)
    absent_fine: float = Field(default=0.0)
    deduction: float = Field(default=0.0)
    payable: float = Field(default=0.0)  # salary + bonus_ot - absent_fine - deduction
    payment: float = Field(default=0.0)
    note: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class ProductionDetail(SQLModel, table=True):
    """
    Output recorded against a production order after it was raised.

    Adding a detail adds its quantity and weight to the order's totals;
    removing it subtracts them again, in the same transaction.
    """

    __tablename__ = "production_details"

    id: Optional[int] = Field(default=None, primary_key=True)
    production_id: int = Field(foreign_key="productions.id", index=True)
    date: dt.date = Field(index=True)
    quantity_produced: float = Field(default=0.0)
    weight_produced: float = Field(default=0.0)
    status: str = Field(default=DocumentStatus.ACTIVE.value)
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
