"""
Document routes: every endpoint here goes through ``ricemill.services.posting``.

  /api/purchase/paddy                   paddy purchases
  /api/purchase/rice                    rice purchases
  /api/purchase/rice/ledger             rice purchase item replacement
  /api/sales                            sales
  /api/production/production-order      production orders
  /api/hr/salary                        salary runs

Each resource supports:
  GET    /            list (filters + paging)
  GET    /{id}        header with items
  POST   /            create (201)
  PUT    /{id}        update header fields / status
  PUT    /{id}/items  replace the item set
  POST   /{id}/cancel cancel one
  DELETE /            cancel many, body {"ids": [...]}
"""
from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session, SQLModel, col, func, select

from ricemill.core.config import settings
from ricemill.core.database import get_session, unit_of_work
from ricemill.core.errors import NotFoundError, ValidationError
from ricemill.models.hr import Employee
from ricemill.models.reference import Party
from ricemill.schemas.documents import (
    LineItemsIn,
    ProductionIn,
    ProductionItemsIn,
    ProductionUpdate,
    PurchaseIn,
    PurchaseUpdate,
    SalaryLinesIn,
    SalaryRunIn,
    SalaryRunUpdate,
    SaleIn,
    SaleUpdate,
)
from ricemill.schemas.envelope import BulkIds, ok, page_meta
from ricemill.services import posting
from ricemill.services.posting import DocumentKind

document_router = APIRouter(prefix="/api", tags=["documents"])


# ── Helpers ───────────────────────────────────────────────────────────────────


def document_payload(session: Session, kind: DocumentKind, doc: SQLModel) -> dict[str, Any]:
    """Header fields, counterparty name and items, ready for ``ok()``."""
    payload = doc.model_dump(exclude={"balance_applied"})
    if kind.counterparty is Party:
        party = session.get(Party, doc.party_id)
        payload["party_name"] = party.name if party else None
    items = posting.get_items(session, kind, doc.id)
    if kind is posting.SALARY:
        names = dict(
            session.exec(
                select(Employee.id, Employee.name).where(col(Employee.id).in_([i.employee_id for i in items]))
            ).all()
        )
        payload["items"] = [{**i.model_dump(), "employee_name": names.get(i.employee_id)} for i in items]
    else:
        payload["items"] = [i.model_dump() for i in items]
    return payload


def _list_documents(
    session: Session,
    kind: DocumentKind,
    *,
    fixed: dict[str, Any],
    date_from: Optional[date],
    date_to: Optional[date],
    party_id: Optional[int],
    doc_status: Optional[str],
    search: Optional[str],
    page: int,
    page_size: int,
) -> dict[str, Any]:
    model = kind.header
    stmt = select(model)
    for field, value in fixed.items():
        stmt = stmt.where(getattr(model, field) == value)
    if date_from:
        stmt = stmt.where(model.date >= date_from)
    if date_to:
        stmt = stmt.where(model.date <= date_to)
    if party_id and kind.counterparty is Party:
        stmt = stmt.where(model.party_id == party_id)
    if doc_status:
        stmt = stmt.where(model.status == doc_status)
    if search:
        stmt = stmt.where(col(model.reference_no).contains(search))

    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()
    stmt = stmt.order_by(col(model.date).desc(), col(model.id).desc())
    rows = session.exec(stmt.offset((page - 1) * page_size).limit(page_size)).all()

    data = [r.model_dump(exclude={"balance_applied"}) for r in rows]
    if kind.counterparty is Party and rows:
        names = dict(
            session.exec(
                select(Party.id, Party.name).where(col(Party.id).in_({r.party_id for r in rows}))
            ).all()
        )
        for row in data:
            row["party_name"] = names.get(row["party_id"])
    return ok(data, meta=page_meta(total, page, page_size))


def _get_owned(session: Session, kind: DocumentKind, doc_id: int, fixed: dict[str, Any]) -> SQLModel:
    """Load a document and make sure it belongs to this resource (paddy vs rice)."""
    doc = posting.get_document(session, kind, doc_id)
    for field, value in fixed.items():
        if getattr(doc, field) != value:
            raise NotFoundError(f"{kind.label} not found")
    return doc


def register_document_routes(
    router: APIRouter,
    path: str,
    kind: DocumentKind,
    create_model: type,
    update_model: type,
    items_model: type,
    fixed: Optional[dict[str, Any]] = None,
) -> None:
    """Attach the standard document endpoints for ``kind`` under ``path``."""
    fixed = fixed or {}
    label = kind.label

    @router.get(path, name=f"list_{path}")
    def list_documents(
        date_from: Optional[date] = Query(default=None, alias="fromDate"),
        date_to: Optional[date] = Query(default=None, alias="toDate"),
        party_id: Optional[int] = Query(default=None, alias="partyId"),
        doc_status: Optional[str] = Query(default=None, alias="status"),
        search: Optional[str] = Query(default=None),
        page: int = Query(default=1, ge=1),
        page_size: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, alias="pageSize"),
        session: Session = Depends(get_session),
    ):
        return _list_documents(
            session,
            kind,
            fixed=fixed,
            date_from=date_from,
            date_to=date_to,
            party_id=party_id,
            doc_status=doc_status,
            search=search,
            page=page,
            page_size=page_size,
        )

    @router.get(path + "/{doc_id}", name=f"get_{path}")
    def get_document(doc_id: int, session: Session = Depends(get_session)):
        doc = _get_owned(session, kind, doc_id, fixed)
        return ok(document_payload(session, kind, doc))

    @router.post(path, status_code=status.HTTP_201_CREATED, name=f"create_{path}")
    def create_document(body: create_model, session: Session = Depends(get_session)):
        with unit_of_work(session, duplicate_message=f"{label} reference number already exists"):
            doc = posting.create_document(session, kind, {**body.header(), **fixed}, body.lines())
        session.refresh(doc)
        return ok(document_payload(session, kind, doc), message=f"{label} created successfully")

    @router.put(path + "/{doc_id}", name=f"update_{path}")
    def update_document(doc_id: int, body: update_model, session: Session = Depends(get_session)):
        patch = body.patch()
        if not patch:
            raise ValidationError("Nothing to update")
        with unit_of_work(session):
            _get_owned(session, kind, doc_id, fixed)
            doc = posting.update_document(session, kind, doc_id, patch)
        session.refresh(doc)
        return ok(document_payload(session, kind, doc), message=f"{label} updated successfully")

    @router.put(path + "/{doc_id}/items", name=f"replace_items_{path}")
    def replace_items(doc_id: int, body: items_model, session: Session = Depends(get_session)):
        with unit_of_work(session):
            _get_owned(session, kind, doc_id, fixed)
            doc = posting.replace_items(session, kind, doc_id, [i.model_dump() for i in body.items])
        session.refresh(doc)
        return ok(document_payload(session, kind, doc), message=f"{label} items updated successfully")

    @router.post(path + "/{doc_id}/cancel", name=f"cancel_{path}")
    def cancel_document(doc_id: int, session: Session = Depends(get_session)):
        with unit_of_work(session):
            _get_owned(session, kind, doc_id, fixed)
            changed = posting.cancel_document(session, kind, doc_id)
        message = f"{label} cancelled successfully" if changed else f"{label} was already cancelled"
        return ok({"id": doc_id, "status": "cancelled", "changed": changed}, message=message)

    @router.delete(path, name=f"bulk_cancel_{path}")
    def bulk_cancel(body: BulkIds, session: Session = Depends(get_session)):
        with unit_of_work(session):
            for doc_id in dict.fromkeys(body.ids):
                _get_owned(session, kind, doc_id, fixed)
            cancelled = posting.bulk_cancel(session, kind, body.ids)
        return ok({"cancelledCount": cancelled}, message=f"{cancelled} {label.lower()}(s) cancelled successfully")


register_document_routes(
    document_router, "/purchase/paddy", posting.PURCHASE, PurchaseIn, PurchaseUpdate, LineItemsIn,
    fixed={"purchase_type": "paddy"},
)
register_document_routes(
    document_router, "/purchase/rice", posting.PURCHASE, PurchaseIn, PurchaseUpdate, LineItemsIn,
    fixed={"purchase_type": "rice"},
)
register_document_routes(document_router, "/sales", posting.SALE, SaleIn, SaleUpdate, LineItemsIn)
register_document_routes(
    document_router, "/production/production-order", posting.PRODUCTION, ProductionIn, ProductionUpdate, ProductionItemsIn
)
register_document_routes(document_router, "/hr/salary", posting.SALARY, SalaryRunIn, SalaryRunUpdate, SalaryLinesIn)


# ── Rice ledger ───────────────────────────────────────────────────────────────


@document_router.get("/purchase/rice/ledger/{doc_id}")
def rice_ledger(doc_id: int, session: Session = Depends(get_session)):
    doc = _get_owned(session, posting.PURCHASE, doc_id, {"purchase_type": "rice"})
    return ok(document_payload(session, posting.PURCHASE, doc))


@document_router.put("/purchase/rice/ledger/{doc_id}")
def edit_rice_ledger(doc_id: int, body: LineItemsIn, session: Session = Depends(get_session)):
    """Ledger edit: swap the items of a rice purchase, with reversal stock rows."""
    with unit_of_work(session):
        _get_owned(session, posting.PURCHASE, doc_id, {"purchase_type": "rice"})
        doc = posting.replace_items(session, posting.PURCHASE, doc_id, [i.model_dump() for i in body.items])
    session.refresh(doc)
    return ok(document_payload(session, posting.PURCHASE, doc), message="Rice ledger updated successfully")
