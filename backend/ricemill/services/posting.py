"""
Ledger posting: the one write path for purchases, sales, production orders and salary runs.

A document is a header plus line items. Posting it means, in one unit of work:

  1. derive totals from the items (never trust client totals),
  2. persist the header with a reference number (explicit or generated),
  3. persist the items,
  4. append one stock movement per item (purchase/production in, sale out),
  5. apply the document's balance delta to its counterparty exactly once.

Either everything above is committed or nothing is. Cancelling a document
only flips its status; stock and balance effects are reversed, if ever, by an
explicit offsetting document.
"""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, Optional

from loguru import logger
from sqlalchemy import delete
from sqlmodel import Session, SQLModel, col, select

from ricemill.core.errors import DuplicateError, NotFoundError, ValidationError
from ricemill.models.common import DOCUMENT_TRANSITIONS, DocumentStatus, LifecycleStatus, utcnow
from ricemill.models.documents import (
    Production,
    ProductionItem,
    Purchase,
    PurchaseItem,
    SalaryLine,
    SalaryRun,
    Sale,
    SaleItem,
)
from ricemill.models.hr import Employee
from ricemill.models.ledger import StockMovement
from ricemill.models.reference import Category, Godown, Party, Product, Silo
from ricemill.services.balances import apply_balance_delta, lock_counterparty, money
from ricemill.services.sequence import MAX_REFERENCE_SKIPS, next_reference_number


# ── Document kinds ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DocumentKind:
    """Everything the generic posting flow needs to know about one document type."""

    name: str                          # sequence key and stock reference_type
    label: str                         # used in messages
    header: type[SQLModel]
    item: type[SQLModel]
    item_fk: str                       # item column pointing at the header
    stock_direction: Optional[str]     # "in", "out" or None (no stock effect)
    counterparty: Optional[type[SQLModel]] = None
    net_field: Optional[str] = None    # net_payable / net_receivable
    settled_field: Optional[str] = None  # paid_amount / received_amount
    balance_sign: int = 0              # direction current_balance moves the counterparty
    initial_status: str = DocumentStatus.COMPLETED.value

    @property
    def priced(self) -> bool:
        return self.net_field is not None


PURCHASE = DocumentKind(
    name="purchase",
    label="Purchase",
    header=Purchase,
    item=PurchaseItem,
    item_fk="purchase_id",
    stock_direction="in",
    counterparty=Party,
    net_field="net_payable",
    settled_field="paid_amount",
    balance_sign=-1,
)

SALE = DocumentKind(
    name="sale",
    label="Sale",
    header=Sale,
    item=SaleItem,
    item_fk="sale_id",
    stock_direction="out",
    counterparty=Party,
    net_field="net_receivable",
    settled_field="received_amount",
    balance_sign=1,
)

PRODUCTION = DocumentKind(
    name="production",
    label="Production order",
    header=Production,
    item=ProductionItem,
    item_fk="production_id",
    stock_direction="in",
    initial_status=DocumentStatus.ACTIVE.value,
)

SALARY = DocumentKind(
    name="salary",
    label="Salary run",
    header=SalaryRun,
    item=SalaryLine,
    item_fk="salary_run_id",
    stock_direction=None,
    counterparty=Employee,
    balance_sign=1,
    initial_status=DocumentStatus.ACTIVE.value,
)

KINDS: dict[str, DocumentKind] = {k.name: k for k in (PURCHASE, SALE, PRODUCTION, SALARY)}


# ── Totals ────────────────────────────────────────────────────────────────────


@dataclass
class Totals:
    total_quantity: float = 0.0
    total_net_weight: float = 0.0
    invoice_amount: float = 0.0
    discount: float = 0.0
    total_amount: float = 0.0
    previous_balance: float = 0.0
    net_amount: float = 0.0
    settled_amount: float = 0.0
    current_balance: float = 0.0


def line_total(quantity: float, net_weight: float, rate: float, price_basis: str = "quantity") -> float:
    """Price of one line: rate × quantity, or rate × weight for weight-priced goods."""
    if price_basis == "weight":
        return money((net_weight or 0) * (rate or 0))
    if price_basis != "quantity":
        raise ValidationError(f"Invalid price basis: {price_basis}")
    return money((quantity or 0) * (rate or 0))


def amounts(invoice_amount: float, discount: float, previous_balance: float, settled: float) -> tuple[float, float, float]:
    """(total_amount, net payable/receivable, current_balance) for a priced document."""
    total_amount = money(invoice_amount - (discount or 0))
    net_amount = money(total_amount + (previous_balance or 0))
    current_balance = money(net_amount - (settled or 0))
    return total_amount, net_amount, current_balance


def compute_totals(
    items: list[dict[str, Any]],
    discount: float = 0.0,
    previous_balance: float = 0.0,
    settled: float = 0.0,
) -> Totals:
    """Totals for a purchase or sale from its line items (``total_price`` already set)."""
    totals = Totals(
        total_quantity=round(sum(i.get("quantity") or 0 for i in items), 3),
        total_net_weight=round(sum(i.get("net_weight") or 0 for i in items), 3),
        invoice_amount=money(sum(i["total_price"] for i in items)),
        discount=money(discount),
        previous_balance=money(previous_balance),
        settled_amount=money(settled),
    )
    totals.total_amount, totals.net_amount, totals.current_balance = amounts(
        totals.invoice_amount, totals.discount, totals.previous_balance, totals.settled_amount
    )
    return totals


def salary_payable(line: dict[str, Any]) -> float:
    return money(
        (line.get("salary") or 0)
        + (line.get("bonus_ot") or 0)
        - (line.get("absent_fine") or 0)
        - (line.get("deduction") or 0)
    )


# ── Lookups & guards ──────────────────────────────────────────────────────────


def _require_active(session: Session, model: type[SQLModel], pk: Optional[int], label: str) -> Optional[SQLModel]:
    if pk is None:
        return None
    obj = session.get(model, pk)
    if obj is None:
        raise NotFoundError(f"{label} {pk} not found")
    if getattr(obj, "status", LifecycleStatus.ACTIVE.value) != LifecycleStatus.ACTIVE.value:
        raise ValidationError(f"{label} {pk} is inactive")
    return obj


def _check_item_refs(session: Session, item: dict[str, Any]) -> None:
    product = _require_active(session, Product, item.get("product_id"), "Product")
    if product is None:
        raise ValidationError("Every item needs a product")
    _require_active(session, Category, item.get("category_id"), "Category")
    _require_active(session, Godown, item.get("godown_id"), "Godown")
    _require_active(session, Silo, item.get("silo_id"), "Silo")


def get_document(session: Session, kind: DocumentKind, doc_id: int) -> SQLModel:
    doc = session.get(kind.header, doc_id)
    if doc is None:
        raise NotFoundError(f"{kind.label} not found")
    return doc


def get_items(session: Session, kind: DocumentKind, doc_id: int) -> list[SQLModel]:
    fk = getattr(kind.item, kind.item_fk)
    return list(session.exec(select(kind.item).where(fk == doc_id).order_by(kind.item.id)).all())


def _reference_taken(session: Session, kind: DocumentKind, reference_no: str) -> bool:
    return session.exec(
        select(kind.header.id).where(kind.header.reference_no == reference_no)
    ).first() is not None


def ensure_reference_free(session: Session, kind: DocumentKind, reference_no: str) -> None:
    if _reference_taken(session, kind, reference_no):
        raise DuplicateError(f"{kind.label} reference number {reference_no} already exists")


def _assign_reference(session: Session, kind: DocumentKind, explicit: Optional[str], date: dt.date) -> str:
    explicit = (explicit or "").strip()
    if explicit:
        ensure_reference_free(session, kind, explicit)
        return explicit
    # A hand-typed voucher number may already hold the next generated value;
    # skip past it inside the same transaction rather than failing forever
    for _ in range(MAX_REFERENCE_SKIPS):
        reference_no = next_reference_number(session, kind.name, date.year)
        if not _reference_taken(session, kind, reference_no):
            return reference_no
        logger.warning(f"{kind.label} number {reference_no} already used by hand, skipping")
    raise ValidationError(f"Could not generate a free {kind.label.lower()} reference number")


# ── Stock movements ───────────────────────────────────────────────────────────


def _movement(
    kind: DocumentKind,
    doc: SQLModel,
    item: SQLModel,
    *,
    direction: str,
    movement_type: Optional[str] = None,
    remarks: Optional[str] = None,
) -> StockMovement:
    quantity = item.quantity or 0
    weight = item.net_weight or 0
    inbound = direction == "in"
    return StockMovement(
        date=doc.date,
        product_id=item.product_id,
        category_id=item.category_id,
        godown_id=item.godown_id,
        silo_id=getattr(item, "silo_id", None),
        movement_type=movement_type or kind.name,
        reference_type=kind.name,
        reference_id=doc.id,
        quantity_in=quantity if inbound else 0.0,
        quantity_out=0.0 if inbound else quantity,
        weight_in=weight if inbound else 0.0,
        weight_out=0.0 if inbound else weight,
        rate=getattr(item, "rate", 0.0) or 0.0,
        remarks=remarks or f"{kind.label} {doc.reference_no}",
    )


def _opposite(direction: str) -> str:
    return "out" if direction == "in" else "in"


# ── Item persistence per kind ─────────────────────────────────────────────────


def _build_priced_items(items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    built = []
    for raw in items:
        item = dict(raw)
        item.setdefault("price_basis", "quantity")
        item["total_price"] = line_total(
            item.get("quantity") or 0,
            item.get("net_weight") or 0,
            item.get("rate") or 0,
            item["price_basis"],
        )
        built.append(item)
    return built


def _persist_items(session: Session, kind: DocumentKind, doc: SQLModel, items: list[dict[str, Any]]) -> list[SQLModel]:
    """Insert items (validating references one by one) and their stock movements."""
    rows = []
    for position, data in enumerate(items, 1):
        if kind is SALARY:
            _require_active(session, Employee, data.get("employee_id"), "Employee")
        else:
            try:
                _check_item_refs(session, data)
            except (NotFoundError, ValidationError) as exc:
                exc.message = f"Item {position}: {exc.message}"
                raise
        row = kind.item(**data, **{kind.item_fk: doc.id})
        session.add(row)
        rows.append(row)
        if kind.stock_direction:
            session.add(_movement(kind, doc, row, direction=kind.stock_direction))
    session.flush()
    return rows


def _salary_lines(lines: list[dict[str, Any]]) -> list[dict[str, Any]]:
    built = []
    seen: set[int] = set()
    for raw in lines:
        line = dict(raw)
        employee_id = line.get("employee_id")
        if employee_id in seen:
            raise ValidationError(f"Employee {employee_id} appears twice on the salary sheet")
        seen.add(employee_id)
        line["payable"] = salary_payable(line)
        if line.get("payment") is None:
            line["payment"] = line["payable"]
        line["payment"] = money(line["payment"])
        built.append(line)
    return built


def _salary_deltas(lines: list[Any]) -> dict[int, float]:
    """Unpaid amount per employee: payable - payment, for dicts or SalaryLine rows."""
    deltas: dict[int, float] = {}
    for line in lines:
        if isinstance(line, dict):
            employee_id, owed = line["employee_id"], line["payable"] - line["payment"]
        else:
            employee_id, owed = line.employee_id, line.payable - line.payment
        deltas[employee_id] = money(deltas.get(employee_id, 0.0) + owed)
    return deltas


# ── Operations ────────────────────────────────────────────────────────────────


def create_document(
    session: Session,
    kind: DocumentKind,
    header: dict[str, Any],
    items: list[dict[str, Any]],
) -> SQLModel:
    """
    Post a new document. Caller wraps this in ``unit_of_work``.

    ``header`` uses model field names plus ``reference_no`` (optional; generated
    when blank). ``items`` are dicts of item field names.
    """
    if not items:
        raise ValidationError("At least one item is required")
    header = dict(header)
    date = header.get("date")
    if date is None:
        raise ValidationError("Date is required")

    # Duplicate check comes before any write
    explicit_ref = header.pop("reference_no", None)
    if explicit_ref and explicit_ref.strip():
        ensure_reference_free(session, kind, explicit_ref.strip())

    counterparty = None
    if kind.counterparty is Party:
        party_id = header.get("party_id")
        if party_id is None:
            raise ValidationError("Party is required")
        counterparty = lock_counterparty(session, Party, party_id)
        if counterparty.status != LifecycleStatus.ACTIVE.value:
            raise ValidationError(f"Party {party_id} is inactive")

    if kind.priced:
        items = _build_priced_items(items)
        totals = compute_totals(
            items,
            discount=header.pop("discount", 0) or 0,
            previous_balance=header.pop("previous_balance", 0) or 0,
            settled=header.pop(kind.settled_field, 0) or 0,
        )
        header.update(
            total_quantity=totals.total_quantity,
            total_net_weight=totals.total_net_weight,
            invoice_amount=totals.invoice_amount,
            discount=totals.discount,
            total_amount=totals.total_amount,
            previous_balance=totals.previous_balance,
            current_balance=totals.current_balance,
            **{kind.net_field: totals.net_amount, kind.settled_field: totals.settled_amount},
        )
    elif kind is PRODUCTION:
        header.update(
            total_quantity=round(sum(i.get("quantity") or 0 for i in items), 3),
            total_weight=round(sum(i.get("net_weight") or 0 for i in items), 3),
        )
    elif kind is SALARY:
        items = _salary_lines(items)
        header.update(
            total_employees=len(items),
            total_payable=money(sum(i["payable"] for i in items)),
            total_salary=money(sum(i["payment"] for i in items)),
        )

    reference_no = _assign_reference(session, kind, explicit_ref, date)
    doc = kind.header(**header, reference_no=reference_no, status=kind.initial_status)
    session.add(doc)
    session.flush()

    _persist_items(session, kind, doc, items)
    _post_balance(session, kind, doc, items)

    session.flush()
    logger.info(f"Posted {kind.name} {doc.reference_no} (id={doc.id}, {len(items)} items)")
    return doc


def _post_balance(session: Session, kind: DocumentKind, doc: SQLModel, items: list[dict[str, Any]]) -> None:
    """Apply the document's counterparty delta once; guarded by ``balance_applied``."""
    if kind.counterparty is None or doc.balance_applied:
        return
    if kind is SALARY:
        for employee_id, delta in _salary_deltas(items).items():
            apply_balance_delta(session, Employee, employee_id, kind.balance_sign * delta)
    else:
        apply_balance_delta(session, Party, doc.party_id, kind.balance_sign * doc.current_balance)
    doc.balance_applied = True
    session.add(doc)


_REQUIRED_HEADER_FIELDS = {
    "date",
    "status",
    "discount",
    "paid_amount",
    "received_amount",
    "payment_mode",
    "year",
    "month",
}


def _check_transition(kind: DocumentKind, current: str, target: str) -> None:
    if target == current:
        return
    if target not in DOCUMENT_TRANSITIONS:
        raise ValidationError(f"Invalid status: {target}")
    if target not in DOCUMENT_TRANSITIONS[current]:
        raise ValidationError(f"{kind.label} cannot move from {current} to {target}")


def update_document(session: Session, kind: DocumentKind, doc_id: int, patch: dict[str, Any]) -> SQLModel:
    """
    Change header fields without touching items or posted stock movements.

    Priced documents are recomputed from the stored invoice amount and
    previous balance; if the current balance moves, the counterparty gets
    only the difference.
    """
    doc = get_document(session, kind, doc_id)
    if doc.status == DocumentStatus.CANCELLED.value:
        raise ValidationError(f"{kind.label} is cancelled and cannot be changed")

    # Explicit null clears optional text fields; required ones ignore it
    patch = {k: v for k, v in patch.items() if v is not None or k not in _REQUIRED_HEADER_FIELDS}
    target_status = patch.pop("status", None)
    if target_status is not None:
        _check_transition(kind, doc.status, target_status)

    if kind.counterparty is Party:
        lock_counterparty(session, Party, doc.party_id)

    for field in ("items", "reference_no", "id", "balance_applied"):
        patch.pop(field, None)

    if kind.priced:
        discount = patch.pop("discount", doc.discount)
        settled = patch.pop(kind.settled_field, getattr(doc, kind.settled_field))
        old_balance = doc.current_balance
        total_amount, net_amount, current_balance = amounts(
            doc.invoice_amount, discount, doc.previous_balance, settled
        )
        doc.discount = money(discount)
        doc.total_amount = total_amount
        setattr(doc, kind.net_field, net_amount)
        setattr(doc, kind.settled_field, money(settled))
        doc.current_balance = current_balance
        if doc.balance_applied and current_balance != old_balance:
            apply_balance_delta(
                session, Party, doc.party_id, kind.balance_sign * (current_balance - old_balance)
            )

    for field, value in patch.items():
        if not hasattr(doc, field):
            raise ValidationError(f"Unknown field: {field}")
        setattr(doc, field, value)

    if target_status is not None:
        doc.status = target_status
    doc.updated_at = utcnow()
    session.add(doc)
    session.flush()
    logger.info(f"Updated {kind.name} {doc.reference_no} (id={doc.id})")
    return doc


def replace_items(session: Session, kind: DocumentKind, doc_id: int, items: list[dict[str, Any]]) -> SQLModel:
    """
    Ledger edit: swap the whole item set of a document.

    Old items are deleted, their stock effect is offset by appended reversal
    movements, new items and movements are inserted, totals recomputed, and
    the counterparty receives only the change in balance.
    """
    if not items:
        raise ValidationError("At least one item is required")
    doc = get_document(session, kind, doc_id)
    if doc.status == DocumentStatus.CANCELLED.value:
        raise ValidationError(f"{kind.label} is cancelled and cannot be changed")
    if kind.counterparty is Party:
        lock_counterparty(session, Party, doc.party_id)

    old_items = get_items(session, kind, doc_id)

    if kind.stock_direction:
        for old in old_items:
            session.add(
                _movement(
                    kind,
                    doc,
                    old,
                    direction=_opposite(kind.stock_direction),
                    movement_type="reversal",
                    remarks=f"Reversal for edit of {kind.label} {doc.reference_no}",
                )
            )

    old_salary_deltas = _salary_deltas(old_items) if kind is SALARY else {}
    fk = getattr(kind.item, kind.item_fk)
    session.execute(delete(kind.item).where(fk == doc_id))
    session.flush()

    if kind.priced:
        items = _build_priced_items(items)
        old_balance = doc.current_balance
        totals = compute_totals(
            items,
            discount=doc.discount,
            previous_balance=doc.previous_balance,
            settled=getattr(doc, kind.settled_field),
        )
        doc.total_quantity = totals.total_quantity
        doc.total_net_weight = totals.total_net_weight
        doc.invoice_amount = totals.invoice_amount
        doc.total_amount = totals.total_amount
        setattr(doc, kind.net_field, totals.net_amount)
        doc.current_balance = totals.current_balance
        _persist_items(session, kind, doc, items)
        if doc.balance_applied and totals.current_balance != old_balance:
            apply_balance_delta(
                session, Party, doc.party_id, kind.balance_sign * (totals.current_balance - old_balance)
            )
    elif kind is PRODUCTION:
        doc.total_quantity = round(sum(i.get("quantity") or 0 for i in items), 3)
        doc.total_weight = round(sum(i.get("net_weight") or 0 for i in items), 3)
        _persist_items(session, kind, doc, items)
    elif kind is SALARY:
        items = _salary_lines(items)
        doc.total_employees = len(items)
        doc.total_payable = money(sum(i["payable"] for i in items))
        doc.total_salary = money(sum(i["payment"] for i in items))
        _persist_items(session, kind, doc, items)
        if doc.balance_applied:
            new_deltas = _salary_deltas(items)
            for employee_id in set(old_salary_deltas) | set(new_deltas):
                change = new_deltas.get(employee_id, 0.0) - old_salary_deltas.get(employee_id, 0.0)
                apply_balance_delta(session, Employee, employee_id, kind.balance_sign * change)

    doc.updated_at = utcnow()
    session.add(doc)
    session.flush()
    logger.info(f"Replaced items of {kind.name} {doc.reference_no}: {len(old_items)} -> {len(items)}")
    return doc


def cancel_document(session: Session, kind: DocumentKind, doc_id: int) -> bool:
    """
    Mark a document cancelled. Returns False when it already was.

    Stock movements and balances are left untouched.
    """
    doc = get_document(session, kind, doc_id)
    if doc.status == DocumentStatus.CANCELLED.value:
        logger.debug(f"{kind.name} {doc_id} already cancelled")
        return False
    doc.status = DocumentStatus.CANCELLED.value
    doc.updated_at = utcnow()
    session.add(doc)
    session.flush()
    logger.info(f"Cancelled {kind.name} {doc.reference_no} (id={doc.id})")
    return True


def bulk_cancel(session: Session, kind: DocumentKind, ids: list[int]) -> int:
    """Cancel several documents; all ids must exist. Returns how many changed state."""
    ids = list(dict.fromkeys(ids))
    if not ids:
        raise ValidationError(f"{kind.label} IDs are required")
    found = set(session.exec(select(kind.header.id).where(col(kind.header.id).in_(ids))).all())
    missing = [i for i in ids if i not in found]
    if missing:
        raise NotFoundError(f"{kind.label}(s) not found: {', '.join(map(str, missing))}")
    return sum(1 for doc_id in ids if cancel_document(session, kind, doc_id))
