"""SQLModel models for reference data (categories, products, godowns, silos, parties, heads)."""
from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field

from ricemill.models.common import LifecycleStatus, utcnow


class Category(SQLModel, table=True):
    """Product category, e.g. Paddy, Rice, Bran, Husk."""

    __tablename__ = "categories"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    unit: Optional[str] = None
    description: Optional[str] = None
    status: str = Field(default=LifecycleStatus.ACTIVE.value, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Product(SQLModel, table=True):
    """A stockable product (paddy variety, rice grade, by-product)."""

    __tablename__ = "products"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    category_id: Optional[int] = Field(default=None, foreign_key="categories.id", index=True)
    unit: Optional[str] = None
    opening_stock: float = Field(default=0.0)
    description: Optional[str] = None
    status: str = Field(default=LifecycleStatus.ACTIVE.value, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Godown(SQLModel, table=True):
    """Warehouse where bagged stock is kept."""

    __tablename__ = "godowns"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    capacity: Optional[float] = None
    description: Optional[str] = None
    status: str = Field(default=LifecycleStatus.ACTIVE.value, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Silo(SQLModel, table=True):
    """Bulk storage silo used by production."""

    __tablename__ = "silos"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    capacity: Optional[float] = None
    description: Optional[str] = None
    status: str = Field(default=LifecycleStatus.ACTIVE.value, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Designation(SQLModel, table=True):
    __tablename__ = "designations"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    description: Optional[str] = None
    status: str = Field(default=LifecycleStatus.ACTIVE.value, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class PartyType(SQLModel, table=True):
    """Customer, Supplier, Broker …"""

    __tablename__ = "party_types"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    description: Optional[str] = None
    status: str = Field(default=LifecycleStatus.ACTIVE.value, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Party(SQLModel, table=True):
    """
    Customer or supplier.

    ``balance`` is the running total posted by documents: sales push it up
    (customer owes the mill), purchases push it down (mill owes the supplier).
    """

    __tablename__ = "parties"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    type_id: Optional[int] = Field(default=None, foreign_key="party_types.id", index=True)
    phone: Optional[str] = None
    address: Optional[str] = None
    opening_balance: float = Field(default=0.0)
    balance: float = Field(default=0.0)
    status: str = Field(default=LifecycleStatus.ACTIVE.value, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class AccountHead(SQLModel, table=True):
    """Chart-of-accounts head. ``kind`` is income, expense, bank or other."""

    __tablename__ = "account_heads"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    kind: str = Field(index=True)
    account_number: Optional[str] = None
    bank_name: Optional[str] = None
    description: Optional[str] = None
    status: str = Field(default=LifecycleStatus.ACTIVE.value, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class PartyDue(SQLModel, table=True):
    """
    Hand-kept register of amounts outstanding with people outside the books.

    ``kind`` is ``due`` (they owe the mill) or ``debt`` (the mill owes them).
    """

    __tablename__ = "party_dues"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    kind: str = Field(index=True)
    company: Optional[str] = None
    mobile: Optional[str] = None
    address: Optional[str] = None
    amount: float = Field(default=0.0)
    description: Optional[str] = None
    status: str = Field(default=LifecycleStatus.ACTIVE.value, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
