"""
Production details: output booked against an existing production order.

Each detail row and the order's running totals change together in one unit
of work. The totals are adjusted in SQL (``total_quantity = total_quantity +
:qty``) so two details posted at once for the same order both count.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Optional

from loguru import logger
from sqlalchemy import delete, update
from sqlmodel import Session, col, func, or_, select

from ricemill.core.errors import NotFoundError, ValidationError
from ricemill.models.common import DocumentStatus, utcnow
from ricemill.models.documents import Production, ProductionDetail

DETAIL_STATUSES = ("active", "completed")


def _detail_row(detail: ProductionDetail, reference_no: Optional[str]) -> dict[str, Any]:
    return {**detail.model_dump(), "production_reference_no": reference_no}


def _joined():
    return select(ProductionDetail, Production.reference_no).outerjoin(
        Production, ProductionDetail.production_id == Production.id
    )


def list_details(
    session: Session,
    *,
    production_id: Optional[int] = None,
    search: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = 1,
    page_size: int = 25,
) -> tuple[list[dict[str, Any]], int]:
    stmt = _joined()
    if production_id:
        stmt = stmt.where(ProductionDetail.production_id == production_id)
    if search:
        stmt = stmt.where(
            or_(col(Production.reference_no).contains(search), col(ProductionDetail.notes).contains(search))
        )
    if date_from:
        stmt = stmt.where(ProductionDetail.date >= date_from)
    if date_to:
        stmt = stmt.where(ProductionDetail.date <= date_to)

    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()
    stmt = stmt.order_by(col(ProductionDetail.date).desc(), col(ProductionDetail.id).desc())
    rows = session.exec(stmt.offset((page - 1) * page_size).limit(page_size)).all()
    return [_detail_row(*r) for r in rows], total


def get_detail(session: Session, detail_id: int) -> dict[str, Any]:
    row = session.exec(_joined().where(ProductionDetail.id == detail_id)).first()
    if row is None:
        raise NotFoundError("Production details not found")
    return _detail_row(*row)


def _shift_totals(session: Session, production_id: int, quantity: float, weight: float) -> None:
    session.execute(
        update(Production)
        .where(Production.id == production_id)
        .values(
            total_quantity=Production.total_quantity + quantity,
            total_weight=Production.total_weight + weight,
            updated_at=utcnow(),
        )
    )


def add_detail(session: Session, data: dict[str, Any]) -> ProductionDetail:
    """Record produced output and add it to the order's totals."""
    if not data.get("production_id") or data.get("date") is None:
        raise ValidationError("Production order and date are required")
    if not data.get("quantity_produced") or not data.get("weight_produced"):
        raise ValidationError("Produced quantity and weight are required")
    if data.get("status", "active") not in DETAIL_STATUSES:
        raise ValidationError(f"Invalid status: {data['status']}")

    order = session.get(Production, data["production_id"])
    if order is None:
        raise NotFoundError("Production order not found")
    if order.status == DocumentStatus.CANCELLED.value:
        raise ValidationError(f"Production order {order.reference_no} is cancelled")

    detail = ProductionDetail(**data)
    session.add(detail)
    session.flush()
    _shift_totals(session, order.id, detail.quantity_produced, detail.weight_produced)
    logger.info(
        f"Production {order.reference_no}: +{detail.quantity_produced} qty, +{detail.weight_produced} weight"
    )
    return detail


def delete_details(session: Session, ids: list[int]) -> int:
    """Remove details and take their output back off the order totals."""
    ids = list(dict.fromkeys(ids))
    if not ids:
        raise ValidationError("Please provide an array of IDs to delete")
    rows = list(session.exec(select(ProductionDetail).where(col(ProductionDetail.id).in_(ids))).all())
    missing = sorted(set(ids) - {r.id for r in rows})
    if missing:
        raise NotFoundError(f"Production detail(s) not found: {', '.join(map(str, missing))}")

    for row in rows:
        _shift_totals(session, row.production_id, -row.quantity_produced, -row.weight_produced)
    session.execute(delete(ProductionDetail).where(col(ProductionDetail.id).in_(ids)))
    session.flush()
    logger.info(f"Deleted {len(rows)} production detail(s): {ids}")
    return len(rows)
