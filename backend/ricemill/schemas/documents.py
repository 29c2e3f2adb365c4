"""Request bodies for posted documents (purchases, sales, production orders, salary runs)."""
from __future__ import annotations

import datetime as dt
from typing import Any, Literal, Optional

from pydantic import AliasChoices, Field, field_validator

from ricemill.schemas.envelope import ApiModel

DocumentStatusIn = Literal["active", "completed", "cancelled"]

# Paper vouchers call it invoice/voucher number; the API accepts any of these
_REFERENCE_ALIASES = AliasChoices("referenceNo", "invoiceNo", "voucherNo", "reference_no")


class LineItemIn(ApiModel):
    category_id: Optional[int] = None
    product_id: int
    godown_id: Optional[int] = None
    quantity: float = Field(default=0.0, ge=0)
    net_weight: float = Field(default=0.0, ge=0)
    rate: float = Field(default=0.0, ge=0)
    price_basis: Literal["quantity", "weight"] = "quantity"


class ProductionItemIn(ApiModel):
    category_id: Optional[int] = None
    product_id: int
    godown_id: Optional[int] = None
    silo_id: Optional[int] = None
    quantity: float = Field(default=0.0, ge=0)
    net_weight: float = Field(default=0.0, ge=0)


class SalaryLineIn(ApiModel):
    employee_id: int
    salary: float = Field(default=0.0, ge=0)
    bonus_ot: float = Field(default=0.0, ge=0, validation_alias=AliasChoices("bonusOT", "bonusOt", "bonus_ot"))
    absent_fine: float = Field(default=0.0, ge=0)
    deduction: float = Field(default=0.0, ge=0)
    payment: Optional[float] = Field(default=None, ge=0)  # defaults to the payable amount
    note: Optional[str] = None


class _DocumentIn(ApiModel):
    date: dt.date
    reference_no: Optional[str] = Field(default=None, validation_alias=_REFERENCE_ALIASES)

    def header(self) -> dict[str, Any]:
        return self.model_dump(exclude={"items"})

    def lines(self) -> list[dict[str, Any]]:
        return [item.model_dump() for item in self.items]


class _TradeIn(_DocumentIn):
    party_id: int
    transport_info: Optional[str] = None
    notes: Optional[str] = None
    discount: float = Field(default=0.0, ge=0)
    previous_balance: float = 0.0
    payment_mode: str = "cash"
    payment_reference: Optional[str] = None
    items: list[LineItemIn] = Field(min_length=1)


class PurchaseIn(_TradeIn):
    challan_no: Optional[str] = None
    paid_amount: float = Field(default=0.0, ge=0)


class SaleIn(_TradeIn):
    received_amount: float = Field(default=0.0, ge=0)


class ProductionIn(_DocumentIn):
    description: Optional[str] = None
    silo_info: Optional[str] = None
    items: list[ProductionItemIn] = Field(min_length=1)


class SalaryRunIn(_DocumentIn):
    year: int = Field(ge=2000, le=2100)
    month: int = Field(ge=1, le=12)
    description: Optional[str] = None
    items: list[SalaryLineIn] = Field(min_length=1, validation_alias=AliasChoices("items", "employees"))

    @field_validator("items")
    @classmethod
    def one_line_per_employee(cls, v: list[SalaryLineIn]) -> list[SalaryLineIn]:
        ids = [line.employee_id for line in v]
        if len(ids) != len(set(ids)):
            raise ValueError("each employee may appear only once")
        return v


# ── Updates ───────────────────────────────────────────────────────────────────


class _DocumentUpdate(ApiModel):
    date: Optional[dt.date] = None
    status: Optional[DocumentStatusIn] = None

    def patch(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class _TradeUpdate(_DocumentUpdate):
    transport_info: Optional[str] = None
    notes: Optional[str] = None
    discount: Optional[float] = Field(default=None, ge=0)
    payment_mode: Optional[str] = None
    payment_reference: Optional[str] = None


class PurchaseUpdate(_TradeUpdate):
    challan_no: Optional[str] = None
    paid_amount: Optional[float] = Field(default=None, ge=0)


class SaleUpdate(_TradeUpdate):
    received_amount: Optional[float] = Field(default=None, ge=0)


class ProductionUpdate(_DocumentUpdate):
    description: Optional[str] = None
    silo_info: Optional[str] = None


class SalaryRunUpdate(_DocumentUpdate):
    description: Optional[str] = None


class LineItemsIn(ApiModel):
    items: list[LineItemIn] = Field(min_length=1)


class ProductionItemsIn(ApiModel):
    items: list[ProductionItemIn] = Field(min_length=1)


class SalaryLinesIn(ApiModel):
    items: list[SalaryLineIn] = Field(min_length=1, validation_alias=AliasChoices("items", "employees"))


class ProductionDetailIn(ApiModel):
    production_id: int
    date: dt.date
    quantity_produced: float = Field(gt=0)
    weight_produced: float = Field(gt=0)
    status: Literal["active", "completed"] = "active"
    notes: Optional[str] = None
