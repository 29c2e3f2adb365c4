"""Request bodies for reference data, vouchers, empty bags, attendance and report logs."""
from __future__ import annotations

import datetime as dt
from typing import Any, Literal, Optional

from pydantic import AliasChoices, Field, field_validator

from ricemill.schemas.envelope import ApiModel

StatusIn = Literal["active", "inactive"]


class _NamedIn(ApiModel):
    """Parties and employees: a name and their own fields, no description."""

    name: str = Field(min_length=1, max_length=200)

    def values(self) -> dict[str, Any]:
        return self.model_dump()


class _EntityIn(_NamedIn):
    description: Optional[str] = None


class _NamedUpdate(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    status: Optional[StatusIn] = None

    def values(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class _EntityUpdate(_NamedUpdate):
    description: Optional[str] = None


class CategoryIn(_EntityIn):
    unit: Optional[str] = None


class CategoryUpdate(_EntityUpdate):
    unit: Optional[str] = None


class ProductIn(_EntityIn):
    category_id: Optional[int] = None
    unit: Optional[str] = None
    opening_stock: float = Field(default=0.0, ge=0)


class ProductUpdate(_EntityUpdate):
    category_id: Optional[int] = None
    unit: Optional[str] = None
    opening_stock: Optional[float] = Field(default=None, ge=0)


class StoreIn(_EntityIn):
    """Godown or silo."""

    capacity: Optional[float] = Field(default=None, ge=0)


class StoreUpdate(_EntityUpdate):
    capacity: Optional[float] = Field(default=None, ge=0)


class NamedIn(_EntityIn):
    """Designation or party type."""


class NamedUpdate(_EntityUpdate):
    pass


class PartyIn(_NamedIn):
    type_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("typeId", "partyTypeId", "type_id"))
    phone: Optional[str] = None
    address: Optional[str] = None
    opening_balance: float = 0.0


class PartyUpdate(_NamedUpdate):
    type_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("typeId", "partyTypeId", "type_id"))
    phone: Optional[str] = None
    address: Optional[str] = None
    opening_balance: Optional[float] = None


class AccountHeadIn(_EntityIn):
    account_number: Optional[str] = None
    bank_name: Optional[str] = None


class AccountHeadUpdate(_EntityUpdate):
    account_number: Optional[str] = None
    bank_name: Optional[str] = None


class EmployeeIn(_NamedIn):
    email: Optional[str] = None
    phone: Optional[str] = None
    designation_id: Optional[int] = None
    salary: float = Field(default=0.0, ge=0)
    joining_date: Optional[dt.date] = None

    @field_validator("email")
    @classmethod
    def email_shape(cls, v: Optional[str]) -> Optional[str]:
        if v and "@" not in v:
            raise ValueError("email must contain '@'")
        return v or None


class EmployeeUpdate(_NamedUpdate):
    email: Optional[str] = None
    phone: Optional[str] = None
    designation_id: Optional[int] = None
    salary: Optional[float] = Field(default=None, ge=0)
    joining_date: Optional[dt.date] = None


# ── Accounts ──────────────────────────────────────────────────────────────────


class TransactionIn(ApiModel):
    date: dt.date
    type: Literal["receive", "payment"] = Field(validation_alias=AliasChoices("type", "voucherType"))
    party_id: Optional[int] = None
    from_head_id: Optional[int] = None
    to_head_id: Optional[int] = None
    amount: float = Field(gt=0)
    description: Optional[str] = None
    reference_no: Optional[str] = None


class TransactionUpdate(ApiModel):
    date: Optional[dt.date] = None
    type: Optional[Literal["receive", "payment"]] = Field(
        default=None, validation_alias=AliasChoices("type", "voucherType")
    )
    party_id: Optional[int] = None
    from_head_id: Optional[int] = None
    to_head_id: Optional[int] = None
    amount: Optional[float] = Field(default=None, gt=0)
    description: Optional[str] = None
    reference_no: Optional[str] = None


class PartyPaymentIn(ApiModel):
    date: dt.date
    type: Literal["receive", "payment"] = Field(validation_alias=AliasChoices("type", "voucherType"))
    head_id: Optional[int] = None
    party_id: int
    amount: float = Field(gt=0)
    description: Optional[str] = None
    reference_no: Optional[str] = None


class PartyPaymentUpdate(ApiModel):
    date: Optional[dt.date] = None
    type: Optional[Literal["receive", "payment"]] = Field(
        default=None, validation_alias=AliasChoices("type", "voucherType")
    )
    head_id: Optional[int] = None
    party_id: Optional[int] = None
    amount: Optional[float] = Field(default=None, gt=0)
    description: Optional[str] = None
    reference_no: Optional[str] = None


class PartyDueIn(_EntityIn):
    company: Optional[str] = None
    mobile: Optional[str] = None
    address: Optional[str] = None
    amount: float = Field(ge=0, validation_alias=AliasChoices("amount", "due", "debts"))


class PartyDueUpdate(_EntityUpdate):
    company: Optional[str] = None
    mobile: Optional[str] = None
    address: Optional[str] = None
    amount: Optional[float] = Field(default=None, ge=0, validation_alias=AliasChoices("amount", "due", "debts"))


# ── Empty bags ────────────────────────────────────────────────────────────────


class EmptyBagIn(ApiModel):
    date: dt.date
    reference_no: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("referenceNo", "invoiceNo", "reference_no")
    )
    party_id: Optional[int] = None
    product_id: Optional[int] = None
    bags: int = Field(default=0, ge=0, validation_alias=AliasChoices("bags", "items"))
    quantity: float = Field(default=0.0, ge=0)
    rate: float = Field(default=0.0, ge=0, validation_alias=AliasChoices("rate", "price"))
    amount: float = Field(default=0.0, ge=0)
    payment_mode: Optional[str] = None
    payment_reference: Optional[str] = None
    description: Optional[str] = None


class EmptyBagUpdate(ApiModel):
    date: Optional[dt.date] = None
    reference_no: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("referenceNo", "invoiceNo", "reference_no")
    )
    party_id: Optional[int] = None
    product_id: Optional[int] = None
    bags: Optional[int] = Field(default=None, ge=0, validation_alias=AliasChoices("bags", "items"))
    quantity: Optional[float] = Field(default=None, ge=0)
    rate: Optional[float] = Field(default=None, ge=0, validation_alias=AliasChoices("rate", "price"))
    amount: Optional[float] = Field(default=None, ge=0)
    payment_mode: Optional[str] = None
    payment_reference: Optional[str] = None
    description: Optional[str] = None


# ── HR ────────────────────────────────────────────────────────────────────────


class AttendanceRowIn(ApiModel):
    employee_id: int
    status: Literal["present", "absent", "leave"] = "present"
    check_in: Optional[str] = Field(default=None, validation_alias=AliasChoices("checkIn", "inTime", "check_in"))
    check_out: Optional[str] = Field(default=None, validation_alias=AliasChoices("checkOut", "outTime", "check_out"))
    overtime_hours: float = Field(
        default=0.0, ge=0, validation_alias=AliasChoices("overtimeHours", "overtime", "overtime_hours")
    )
    notes: Optional[str] = None


class AttendanceIn(ApiModel):
    date: dt.date
    description: Optional[str] = None
    employees: list[AttendanceRowIn] = Field(min_length=1)


class AttendanceDelete(ApiModel):
    dates: list[dt.date] = Field(min_length=1)


# ── Reports ───────────────────────────────────────────────────────────────────


class PrintLogIn(ApiModel):
    report_type: str = "daily"
    date: Optional[dt.date] = None
    printed_by: Optional[str] = None
