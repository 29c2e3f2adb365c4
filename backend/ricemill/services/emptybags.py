"""
Empty-bag trade: purchases, sales, receipts and hand-outs of empty bags.

Bags are tracked apart from milled stock. ``purchase`` and ``receive``
entries bring bags in, ``sale`` and ``payment`` entries take them out, and
``bag_stocks`` is the running sum per bag product. Deleting an entry marks
it inactive and drops it from the stock view.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Optional

from loguru import logger
from sqlalchemy import case
from sqlmodel import Session, col, func, select

from ricemill.core.errors import DuplicateError, NotFoundError, ValidationError
from ricemill.models.common import LifecycleStatus, utcnow
from ricemill.models.ledger import EmptyBagEntry
from ricemill.models.reference import Category, Party, Product
from ricemill.services.balances import money
from ricemill.services.sequence import MAX_REFERENCE_SKIPS, next_reference_number

# entry type -> +1 bags in, -1 bags out
DIRECTIONS: dict[str, int] = {"purchase": 1, "receive": 1, "sale": -1, "payment": -1}

ACTIVE = LifecycleStatus.ACTIVE.value

_REQUIRED_FIELDS = {"date", "bags", "quantity", "rate", "amount"}


def _check_type(entry_type: str) -> None:
    if entry_type not in DIRECTIONS:
        raise ValidationError(f"Invalid empty bag entry type: {entry_type}")


def _check_refs(session: Session, data: dict[str, Any]) -> None:
    for column, model, label in (("party_id", Party, "Party"), ("product_id", Product, "Product")):
        pk = data.get(column)
        if pk is None:
            continue
        obj = session.get(model, pk)
        if obj is None:
            raise NotFoundError(f"{label} {pk} not found")
        if obj.status != ACTIVE:
            raise ValidationError(f"{label} {pk} is inactive")


def _price(data: dict[str, Any]) -> None:
    """Amount follows bags × rate when a rate is given, else the amount typed in."""
    if data.get("rate"):
        data["amount"] = money((data.get("bags") or 0) * data["rate"])
    else:
        data["amount"] = money(data.get("amount") or 0)


def _ensure_reference_free(session: Session, entry_type: str, reference_no: str, exclude_id: Optional[int] = None) -> None:
    stmt = select(EmptyBagEntry.id).where(
        EmptyBagEntry.entry_type == entry_type, EmptyBagEntry.reference_no == reference_no
    )
    if exclude_id is not None:
        stmt = stmt.where(EmptyBagEntry.id != exclude_id)
    if session.exec(stmt).first() is not None:
        raise DuplicateError(f"Empty bag {entry_type} {reference_no} already exists")


def _generate_reference(session: Session, entry_type: str, year: int) -> str:
    # Skip numbers already typed in by hand
    for _ in range(MAX_REFERENCE_SKIPS):
        reference_no = next_reference_number(session, f"emptybag_{entry_type}", year)
        try:
            _ensure_reference_free(session, entry_type, reference_no)
        except DuplicateError:
            logger.warning(f"Empty bag {entry_type} number {reference_no} already used by hand, skipping")
            continue
        return reference_no
    raise ValidationError(f"Could not generate a free empty bag {entry_type} reference number")


def entry_row(entry: EmptyBagEntry, party: Optional[str], product: Optional[str]) -> dict[str, Any]:
    return {**entry.model_dump(), "party_name": party, "product_name": product}


def _joined():
    return (
        select(EmptyBagEntry, Party.name, Product.name)
        .outerjoin(Party, EmptyBagEntry.party_id == Party.id)
        .outerjoin(Product, EmptyBagEntry.product_id == Product.id)
    )


def list_entries(
    session: Session,
    entry_type: str,
    *,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    party_id: Optional[int] = None,
    search: Optional[str] = None,
    page: int = 1,
    page_size: int = 25,
) -> tuple[list[dict[str, Any]], int]:
    _check_type(entry_type)
    stmt = _joined().where(EmptyBagEntry.entry_type == entry_type, EmptyBagEntry.status == ACTIVE)
    if date_from:
        stmt = stmt.where(EmptyBagEntry.date >= date_from)
    if date_to:
        stmt = stmt.where(EmptyBagEntry.date <= date_to)
    if party_id:
        stmt = stmt.where(EmptyBagEntry.party_id == party_id)
    if search:
        stmt = stmt.where(col(EmptyBagEntry.reference_no).contains(search))

    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()
    stmt = stmt.order_by(col(EmptyBagEntry.date).desc(), col(EmptyBagEntry.id).desc())
    rows = session.exec(stmt.offset((page - 1) * page_size).limit(page_size)).all()
    return [entry_row(*r) for r in rows], total


def get_entry(session: Session, entry_type: str, entry_id: int) -> dict[str, Any]:
    row = session.exec(
        _joined().where(
            EmptyBagEntry.id == entry_id,
            EmptyBagEntry.entry_type == entry_type,
            EmptyBagEntry.status == ACTIVE,
        )
    ).first()
    if row is None:
        raise NotFoundError(f"Empty bag {entry_type} not found")
    return entry_row(*row)


def create_entry(session: Session, entry_type: str, data: dict[str, Any]) -> EmptyBagEntry:
    _check_type(entry_type)
    data = dict(data)
    if data.get("date") is None:
        raise ValidationError("Date is required")
    _check_refs(session, data)
    _price(data)

    reference_no = (data.pop("reference_no", None) or "").strip()
    if reference_no:
        _ensure_reference_free(session, entry_type, reference_no)
    else:
        reference_no = _generate_reference(session, entry_type, data["date"].year)

    entry = EmptyBagEntry(**data, entry_type=entry_type, reference_no=reference_no)
    session.add(entry)
    session.flush()
    logger.info(f"Empty bag {entry_type} {reference_no}: {entry.bags} bag(s), {entry.amount:.2f}")
    return entry


def update_entry(session: Session, entry_type: str, entry_id: int, patch: dict[str, Any]) -> EmptyBagEntry:
    get_entry(session, entry_type, entry_id)
    entry = session.get(EmptyBagEntry, entry_id)

    patch = {
        k: v
        for k, v in patch.items()
        if k not in ("id", "entry_type", "status", "created_at") and (v is not None or k not in _REQUIRED_FIELDS)
    }
    if "reference_no" in patch:
        reference_no = (patch["reference_no"] or "").strip()
        if not reference_no:
            raise ValidationError("Reference number cannot be blank")
        _ensure_reference_free(session, entry_type, reference_no, exclude_id=entry_id)
        patch["reference_no"] = reference_no
    _check_refs(session, patch)

    for key, value in patch.items():
        setattr(entry, key, value)
    priced = {"bags": entry.bags, "rate": entry.rate, "amount": entry.amount}
    _price(priced)
    entry.amount = priced["amount"]
    entry.updated_at = utcnow()
    session.add(entry)
    session.flush()
    logger.info(f"Updated empty bag {entry_type} {entry.reference_no}")
    return entry


def delete_entries(session: Session, entry_type: str, ids: list[int]) -> int:
    _check_type(entry_type)
    ids = list(dict.fromkeys(ids))
    if not ids:
        raise ValidationError("Provide array of IDs to delete")
    rows = list(
        session.exec(
            select(EmptyBagEntry).where(
                col(EmptyBagEntry.id).in_(ids), EmptyBagEntry.entry_type == entry_type
            )
        ).all()
    )
    missing = sorted(set(ids) - {r.id for r in rows})
    if missing:
        raise NotFoundError(f"Empty bag {entry_type}(s) not found: {', '.join(map(str, missing))}")

    changed = 0
    for entry in rows:
        if entry.status == ACTIVE:
            entry.status = LifecycleStatus.INACTIVE.value
            entry.updated_at = utcnow()
            session.add(entry)
            changed += 1
    session.flush()
    logger.info(f"Deleted {changed} empty bag {entry_type}(s)")
    return changed


def _bags(entry_type: str):
    return func.coalesce(
        func.sum(case((EmptyBagEntry.entry_type == entry_type, EmptyBagEntry.bags), else_=0)), 0
    )


def bag_stocks(session: Session, product_id: Optional[int] = None) -> list[dict[str, Any]]:
    """Bags in and out per bag product; entries without a product share one row."""
    stmt = (
        select(
            EmptyBagEntry.product_id,
            Product.name,
            Category.name,
            _bags("purchase").label("purchase"),
            _bags("receive").label("receive"),
            _bags("sale").label("sales"),
            _bags("payment").label("payment"),
        )
        .outerjoin(Product, EmptyBagEntry.product_id == Product.id)
        .outerjoin(Category, Product.category_id == Category.id)
        .where(EmptyBagEntry.status == ACTIVE)
        .group_by(EmptyBagEntry.product_id, Product.name, Category.name)
        .order_by(Product.name)
    )
    if product_id:
        stmt = stmt.where(EmptyBagEntry.product_id == product_id)

    return [
        {
            "product_id": r[0],
            "product_name": r[1],
            "category_name": r[2],
            "purchase": int(r.purchase),
            "receive": int(r.receive),
            "sales": int(r.sales),
            "payment": int(r.payment),
            "stock": int(r.purchase + r.receive - r.sales - r.payment),
        }
        for r in session.exec(stmt).all()
    ]
