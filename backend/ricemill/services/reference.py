"""
Reference-data CRUD: categories, products, godowns, silos, designations,
party types, parties, account heads, employees and the due/debt register.

Every entity carries a ``LifecycleStatus``; "delete" means deactivate, and
deactivation goes through one shared guard (``ensure_unreferenced``) that
refuses while any document line, stock movement, transaction or other
active record still points at the row.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from loguru import logger
from sqlmodel import Session, SQLModel, col, func, select

from ricemill.core.errors import DuplicateError, NotFoundError, ReferenceInUseError, ValidationError
from ricemill.models.common import LifecycleStatus, utcnow
from ricemill.models.documents import (
    ProductionItem,
    Purchase,
    PurchaseItem,
    SalaryLine,
    Sale,
    SaleItem,
)
from ricemill.models.hr import Attendance, Employee
from ricemill.models.ledger import AccountTransaction, EmptyBagEntry, PartyPayment, StockMovement
from ricemill.models.reference import (
    AccountHead,
    Category,
    Designation,
    Godown,
    Party,
    PartyDue,
    PartyType,
    Product,
    Silo,
)
from ricemill.services.balances import apply_balance_delta, money

ACCOUNT_HEAD_KINDS = ("income", "expense", "bank", "other")
PARTY_DUE_KINDS = ("due", "debt")

# Fields the client may never write directly
_PROTECTED = {"id", "balance", "created_at", "updated_at"}

# Columns an update may not set to null; any other optional column can be cleared
_NOT_NULL = {"name", "status", "kind", "salary", "opening_balance", "opening_stock", "amount"}


@dataclass(frozen=True)
class Referrer:
    """A column that points at an entity and blocks its deactivation."""

    model: type[SQLModel]
    column: str
    label: str
    only_active: bool = False  # count only rows whose own status is active


@dataclass(frozen=True)
class EntitySpec:
    model: type[SQLModel]
    label: str
    scope: Optional[str] = None  # name is unique within this column's value
    foreign_keys: dict[str, type[SQLModel]] = field(default_factory=dict)
    referrers: tuple[Referrer, ...] = ()


def _line_refs(column: str) -> tuple[Referrer, ...]:
    return (
        Referrer(PurchaseItem, column, "purchase items"),
        Referrer(SaleItem, column, "sale items"),
        Referrer(ProductionItem, column, "production items"),
        Referrer(StockMovement, column, "stock movements"),
    )


ENTITIES: dict[str, EntitySpec] = {
    "category": EntitySpec(
        Category,
        "Category",
        referrers=(Referrer(Product, "category_id", "products", only_active=True),) + _line_refs("category_id"),
    ),
    "product": EntitySpec(
        Product,
        "Product",
        foreign_keys={"category_id": Category},
        referrers=_line_refs("product_id")
        + (Referrer(EmptyBagEntry, "product_id", "empty bag entries", only_active=True),),
    ),
    "godown": EntitySpec(Godown, "Godown", referrers=_line_refs("godown_id")),
    "silo": EntitySpec(
        Silo,
        "Silo",
        referrers=(
            Referrer(ProductionItem, "silo_id", "production items"),
            Referrer(StockMovement, "silo_id", "stock movements"),
        ),
    ),
    "designation": EntitySpec(
        Designation,
        "Designation",
        referrers=(Referrer(Employee, "designation_id", "employees", only_active=True),),
    ),
    "party_type": EntitySpec(
        PartyType,
        "Party type",
        referrers=(Referrer(Party, "type_id", "parties", only_active=True),),
    ),
    "party": EntitySpec(
        Party,
        "Party",
        foreign_keys={"type_id": PartyType},
        referrers=(
            Referrer(Purchase, "party_id", "purchases"),
            Referrer(Sale, "party_id", "sales"),
            Referrer(AccountTransaction, "party_id", "transactions", only_active=True),
            Referrer(PartyPayment, "party_id", "party payments"),
            Referrer(EmptyBagEntry, "party_id", "empty bag entries", only_active=True),
        ),
    ),
    "account_head": EntitySpec(
        AccountHead,
        "Account head",
        scope="kind",
        referrers=(
            Referrer(AccountTransaction, "from_head_id", "transactions", only_active=True),
            Referrer(AccountTransaction, "to_head_id", "transactions", only_active=True),
            Referrer(PartyPayment, "head_id", "party payments", only_active=True),
        ),
    ),
    "party_due": EntitySpec(PartyDue, "Party due", scope="kind"),
    "employee": EntitySpec(
        Employee,
        "Employee",
        foreign_keys={"designation_id": Designation},
        referrers=(
            Referrer(SalaryLine, "employee_id", "salary lines"),
            Referrer(Attendance, "employee_id", "attendance records"),
        ),
    ),
}


def spec_for(entity: str) -> EntitySpec:
    try:
        return ENTITIES[entity]
    except KeyError:
        raise ValidationError(f"Unknown entity: {entity}")


# ── Reads ─────────────────────────────────────────────────────────────────────


def list_entities(
    session: Session,
    entity: str,
    *,
    status: Optional[str] = LifecycleStatus.ACTIVE.value,
    search: Optional[str] = None,
    filters: Optional[dict[str, Any]] = None,
    page: int = 1,
    page_size: int = 25,
) -> tuple[list[SQLModel], int]:
    """Page of rows ordered by name, plus the total count before paging."""
    spec = spec_for(entity)
    model = spec.model
    stmt = select(model)
    if status:
        stmt = stmt.where(model.status == status)
    if search:
        stmt = stmt.where(col(model.name).contains(search))
    for name, value in (filters or {}).items():
        if value is not None:
            stmt = stmt.where(getattr(model, name) == value)

    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()
    stmt = stmt.order_by(model.name, model.id).offset((page - 1) * page_size).limit(page_size)
    return list(session.exec(stmt).all()), total


def get_entity(session: Session, entity: str, pk: int) -> SQLModel:
    spec = spec_for(entity)
    obj = session.get(spec.model, pk)
    if obj is None:
        raise NotFoundError(f"{spec.label} not found")
    return obj


# ── Writes ────────────────────────────────────────────────────────────────────


def _ensure_name_free(
    session: Session,
    spec: EntitySpec,
    name: str,
    scope_value: Any = None,
    exclude_id: Optional[int] = None,
) -> None:
    model = spec.model
    stmt = select(model.id).where(
        func.lower(model.name) == name.lower(),
        model.status == LifecycleStatus.ACTIVE.value,
    )
    if spec.scope:
        stmt = stmt.where(getattr(model, spec.scope) == scope_value)
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    if session.exec(stmt).first() is not None:
        raise DuplicateError(f"{spec.label} '{name}' already exists")


def _check_foreign_keys(session: Session, spec: EntitySpec, data: dict[str, Any]) -> None:
    for column, target in spec.foreign_keys.items():
        pk = data.get(column)
        if pk is None:
            continue
        obj = session.get(target, pk)
        if obj is None:
            raise NotFoundError(f"{target.__name__} {pk} not found")
        if obj.status != LifecycleStatus.ACTIVE.value:
            raise ValidationError(f"{target.__name__} {pk} is inactive")


def _clean(spec: EntitySpec, data: dict[str, Any]) -> dict[str, Any]:
    data = {k: v for k, v in data.items() if k not in _PROTECTED}
    for key in data:
        if not hasattr(spec.model, key):
            raise ValidationError(f"Unknown field for {spec.label}: {key}")
    if "name" in data:
        name = (data["name"] or "").strip()
        if not name:
            raise ValidationError(f"{spec.label} name is required")
        data["name"] = name
    if spec.model is AccountHead and "kind" in data and data["kind"] not in ACCOUNT_HEAD_KINDS:
        raise ValidationError(f"Invalid account head kind: {data['kind']}")
    if spec.model is PartyDue:
        if "kind" in data and data["kind"] not in PARTY_DUE_KINDS:
            raise ValidationError(f"Invalid party due kind: {data['kind']}")
        if data.get("amount") is not None and data["amount"] < 0:
            raise ValidationError("Due amount cannot be negative")
    if "status" in data and data["status"] not in (s.value for s in LifecycleStatus):
        raise ValidationError(f"Invalid status: {data['status']}")
    return data


def create_entity(session: Session, entity: str, data: dict[str, Any]) -> SQLModel:
    spec = spec_for(entity)
    data = _clean(spec, data)
    if "name" not in data:
        raise ValidationError(f"{spec.label} name is required")
    if spec.scope and data.get(spec.scope) is None:
        raise ValidationError(f"{spec.label} {spec.scope} is required")

    _ensure_name_free(session, spec, data["name"], data.get(spec.scope) if spec.scope else None)
    _check_foreign_keys(session, spec, data)

    data.setdefault("status", LifecycleStatus.ACTIVE.value)
    obj = spec.model(**data)
    if spec.model is Party:
        obj.balance = money(obj.opening_balance)
    session.add(obj)
    session.flush()
    logger.info(f"Created {entity} {obj.id} '{obj.name}'")
    return obj


def update_entity(session: Session, entity: str, pk: int, data: dict[str, Any]) -> SQLModel:
    """
    Patch an entity. Deactivating through here runs the same guard as
    ``deactivate_entities``; changing a party's opening balance shifts its
    running balance by the difference.
    """
    spec = spec_for(entity)
    obj = get_entity(session, entity, pk)
    data = _clean(spec, {k: v for k, v in data.items() if v is not None or k not in _NOT_NULL})

    status = data.get("status", obj.status)
    name = data.get("name", obj.name)
    scope_value = data.get(spec.scope, getattr(obj, spec.scope)) if spec.scope else None
    if status == LifecycleStatus.ACTIVE.value:
        _ensure_name_free(session, spec, name, scope_value, exclude_id=pk)
    elif obj.status == LifecycleStatus.ACTIVE.value:
        ensure_unreferenced(session, entity, [pk])
    _check_foreign_keys(session, spec, data)

    if spec.model is Party and "opening_balance" in data:
        diff = money(data["opening_balance"] - (obj.opening_balance or 0))
        if diff:
            apply_balance_delta(session, Party, pk, diff)
            session.refresh(obj)

    for key, value in data.items():
        setattr(obj, key, value)
    obj.updated_at = utcnow()
    session.add(obj)
    session.flush()
    logger.info(f"Updated {entity} {pk}")
    return obj


def usage_counts(session: Session, entity: str, ids: list[int]) -> dict[str, int]:
    """How many referring rows each referrer holds for ``ids`` (zeros omitted)."""
    spec = spec_for(entity)
    counts: dict[str, int] = {}
    for ref in spec.referrers:
        column = getattr(ref.model, ref.column)
        stmt = select(func.count()).select_from(ref.model).where(col(column).in_(ids))
        if ref.only_active:
            stmt = stmt.where(ref.model.status == LifecycleStatus.ACTIVE.value)
        n = session.exec(stmt).one()
        if n:
            counts[ref.label] = counts.get(ref.label, 0) + n
    return counts


def ensure_unreferenced(session: Session, entity: str, ids: list[int]) -> None:
    """Raise ReferenceInUseError if anything still points at one of ``ids``."""
    counts = usage_counts(session, entity, ids)
    if counts:
        detail = ", ".join(f"{n} {label}" for label, n in counts.items())
        raise ReferenceInUseError(
            f"{spec_for(entity).label} is in use ({detail}) and cannot be deleted"
        )


def deactivate_entities(session: Session, entity: str, ids: list[int]) -> int:
    """
    Bulk soft delete. All ids must exist and be unreferenced, otherwise
    nothing changes. Returns how many rows went from active to inactive.
    """
    spec = spec_for(entity)
    ids = list(dict.fromkeys(ids))
    if not ids:
        raise ValidationError(f"{spec.label} IDs are required")

    rows = list(session.exec(select(spec.model).where(col(spec.model.id).in_(ids))).all())
    missing = sorted(set(ids) - {r.id for r in rows})
    if missing:
        raise NotFoundError(f"{spec.label}(s) not found: {', '.join(map(str, missing))}")

    ensure_unreferenced(session, entity, ids)

    changed = 0
    now = utcnow()
    for row in rows:
        if row.status != LifecycleStatus.INACTIVE.value:
            row.status = LifecycleStatus.INACTIVE.value
            row.updated_at = now
            session.add(row)
            changed += 1
    session.flush()
    logger.info(f"Deactivated {changed} {entity} row(s): {ids}")
    return changed
