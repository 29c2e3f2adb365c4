"""
Vouchers, attendance, production details and the empty-bag trade.

  /api/accounts/transactions              receive / payment vouchers
  /api/party/payments                     party payment vouchers
  /api/hr/attendance                      daily attendance sheets
  /api/hr/monthly-attendance              month roll-ups
  /api/production/production-details      output booked against an order
  /api/emptybags/{purchase,sales,receive,payment}
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlmodel import Session

from ricemill.core.config import settings
from ricemill.core.database import get_session, unit_of_work
from ricemill.core.errors import ValidationError
from ricemill.schemas.envelope import BulkIds, ok, page_meta
from ricemill.schemas.documents import ProductionDetailIn
from ricemill.schemas.reference import (
    AttendanceDelete,
    AttendanceIn,
    EmptyBagIn,
    EmptyBagUpdate,
    PartyPaymentIn,
    PartyPaymentUpdate,
    TransactionIn,
    TransactionUpdate,
)
from ricemill.services import accounts, emptybags, hr, production

operations_router = APIRouter(prefix="/api", tags=["operations"])


# ── Transactions ──────────────────────────────────────────────────────────────


@operations_router.get("/accounts/transactions")
def list_transactions(
    date_from: Optional[date] = Query(default=None, alias="fromDate"),
    date_to: Optional[date] = Query(default=None, alias="toDate"),
    txn_type: Optional[str] = Query(default=None, alias="type"),
    party_id: Optional[int] = Query(default=None, alias="partyId"),
    head_id: Optional[int] = Query(default=None, alias="headId"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, alias="pageSize"),
    session: Session = Depends(get_session),
):
    rows, total = accounts.list_transactions(
        session,
        date_from=date_from,
        date_to=date_to,
        txn_type=txn_type,
        party_id=party_id,
        head_id=head_id,
        page=page,
        page_size=page_size,
    )
    return ok(rows, meta=page_meta(total, page, page_size))


@operations_router.get("/accounts/transactions/{txn_id}")
def get_transaction(txn_id: int, session: Session = Depends(get_session)):
    return ok(accounts.get_transaction(session, txn_id))


@operations_router.post("/accounts/transactions", status_code=status.HTTP_201_CREATED)
def create_transaction(body: TransactionIn, session: Session = Depends(get_session)):
    with unit_of_work(session):
        txn = accounts.create_transaction(session, body.model_dump())
    return ok(accounts.get_transaction(session, txn.id), message="Transaction created successfully")


@operations_router.put("/accounts/transactions/{txn_id}")
def update_transaction(txn_id: int, body: TransactionUpdate, session: Session = Depends(get_session)):
    patch = body.model_dump(exclude_unset=True)
    if not patch:
        raise ValidationError("Nothing to update")
    with unit_of_work(session):
        accounts.update_transaction(session, txn_id, patch)
    return ok(accounts.get_transaction(session, txn_id), message="Transaction updated successfully")


@operations_router.delete("/accounts/transactions")
def delete_transactions(body: BulkIds, session: Session = Depends(get_session)):
    with unit_of_work(session):
        changed = accounts.delete_transactions(session, body.ids)
    return ok({"deletedCount": changed}, message=f"{changed} transaction(s) deleted successfully")


# ── Attendance ────────────────────────────────────────────────────────────────


@operations_router.get("/hr/attendance")
def list_attendance(
    date_from: Optional[date] = Query(default=None, alias="fromDate"),
    date_to: Optional[date] = Query(default=None, alias="toDate"),
    employee_id: Optional[int] = Query(default=None, alias="employeeId"),
    limit: int = Query(default=10, ge=1, le=366),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, alias="pageSize"),
    session: Session = Depends(get_session),
):
    """Per-day summaries, or one employee's latest rows when ``employeeId`` is given."""
    if employee_id is not None:
        return ok(hr.employee_attendance(session, employee_id, limit))
    rows, total = hr.attendance_summary(session, date_from, date_to, page, page_size)
    return ok(rows, meta=page_meta(total, page, page_size))


@operations_router.get("/hr/attendance/{day}")
def get_attendance(day: date, session: Session = Depends(get_session)):
    return ok(hr.attendance_for_date(session, day))


@operations_router.post("/hr/attendance", status_code=status.HTTP_201_CREATED)
def record_attendance(body: AttendanceIn, session: Session = Depends(get_session)):
    with unit_of_work(session):
        sheet = hr.record_attendance(
            session, body.date, [row.model_dump() for row in body.employees], body.description
        )
    return ok(sheet, message="Attendance recorded successfully")


@operations_router.put("/hr/attendance/{day}")
def replace_attendance(day: date, body: AttendanceIn, session: Session = Depends(get_session)):
    """Rewrite a day's sheet; the sheet may also move to ``body.date``."""
    with unit_of_work(session):
        hr.attendance_for_date(session, day)
        hr.delete_attendance(session, [day])
        sheet = hr.record_attendance(
            session, body.date, [row.model_dump() for row in body.employees], body.description
        )
    return ok(sheet, message="Attendance updated successfully")


@operations_router.delete("/hr/attendance")
def delete_attendance(body: AttendanceDelete, session: Session = Depends(get_session)):
    with unit_of_work(session):
        deleted = hr.delete_attendance(session, body.dates)
    return ok({"deletedCount": deleted}, message=f"{deleted} attendance record(s) deleted successfully")


@operations_router.get("/hr/monthly-attendance/{year}/{month}")
def monthly_attendance(year: int, month: int, session: Session = Depends(get_session)):
    return ok(hr.monthly_attendance(session, year, month))


@operations_router.get("/hr/monthly-attendance")
def monthly_attendance_current(
    year: Optional[int] = Query(default=None),
    month: Optional[int] = Query(default=None),
    session: Session = Depends(get_session),
):
    today = date.today()
    return ok(hr.monthly_attendance(session, year or today.year, month or today.month))


# ── Party payments ────────────────────────────────────────────────────────────


@operations_router.get("/party/payments")
def list_party_payments(
    date_from: Optional[date] = Query(default=None, alias="fromDate"),
    date_to: Optional[date] = Query(default=None, alias="toDate"),
    payment_type: Optional[str] = Query(default=None, alias="type"),
    party_id: Optional[int] = Query(default=None, alias="partyId"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, alias="pageSize"),
    session: Session = Depends(get_session),
):
    rows, total = accounts.list_party_payments(
        session,
        date_from=date_from,
        date_to=date_to,
        payment_type=payment_type,
        party_id=party_id,
        page=page,
        page_size=page_size,
    )
    return ok(rows, meta=page_meta(total, page, page_size))


@operations_router.get("/party/payments/{payment_id}")
def get_party_payment(payment_id: int, session: Session = Depends(get_session)):
    return ok(accounts.get_party_payment(session, payment_id))


@operations_router.post("/party/payments", status_code=status.HTTP_201_CREATED)
def create_party_payment(request: Request, body: PartyPaymentIn, session: Session = Depends(get_session)):
    data = {**body.model_dump(), "created_by": getattr(request.state, "user", None)}
    with unit_of_work(session):
        payment = accounts.create_party_payment(session, data)
    return ok(accounts.get_party_payment(session, payment.id), message="Party payment created successfully")


@operations_router.put("/party/payments/{payment_id}")
def update_party_payment(payment_id: int, body: PartyPaymentUpdate, session: Session = Depends(get_session)):
    patch = body.model_dump(exclude_unset=True)
    if not patch:
        raise ValidationError("Nothing to update")
    with unit_of_work(session):
        accounts.update_party_payment(session, payment_id, patch)
    return ok(accounts.get_party_payment(session, payment_id), message="Party payment updated successfully")


@operations_router.delete("/party/payments")
def delete_party_payments(body: BulkIds, session: Session = Depends(get_session)):
    with unit_of_work(session):
        changed = accounts.delete_party_payments(session, body.ids)
    return ok({"deletedCount": changed}, message=f"{changed} party payment(s) deleted successfully")


# ── Production details ────────────────────────────────────────────────────────


@operations_router.get("/production/production-details")
def list_production_details(
    production_id: Optional[int] = Query(default=None, alias="productionId"),
    search: Optional[str] = Query(default=None),
    date_from: Optional[date] = Query(default=None, alias="fromDate"),
    date_to: Optional[date] = Query(default=None, alias="toDate"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, alias="pageSize"),
    session: Session = Depends(get_session),
):
    rows, total = production.list_details(
        session,
        production_id=production_id,
        search=search,
        date_from=date_from,
        date_to=date_to,
        page=page,
        page_size=page_size,
    )
    return ok(rows, meta=page_meta(total, page, page_size))


@operations_router.get("/production/production-details/{detail_id}")
def get_production_detail(detail_id: int, session: Session = Depends(get_session)):
    return ok(production.get_detail(session, detail_id))


@operations_router.post("/production/production-details", status_code=status.HTTP_201_CREATED)
def add_production_detail(body: ProductionDetailIn, session: Session = Depends(get_session)):
    with unit_of_work(session):
        detail = production.add_detail(session, body.model_dump())
    return ok(production.get_detail(session, detail.id), message="Production details added successfully")


@operations_router.delete("/production/production-details")
def delete_production_details(body: BulkIds, session: Session = Depends(get_session)):
    with unit_of_work(session):
        deleted = production.delete_details(session, body.ids)
    return ok({"deletedCount": deleted}, message=f"{deleted} production detail(s) deleted successfully")


# ── Empty bags ────────────────────────────────────────────────────────────────


def register_emptybag_routes(router: APIRouter, path: str, entry_type: str) -> None:
    """list/get/create/update/bulk-delete for one kind of empty-bag entry."""
    label = f"Empty bag {entry_type}"

    @router.get(path, name=f"list_{path}")
    def list_entries(
        date_from: Optional[date] = Query(default=None, alias="fromDate"),
        date_to: Optional[date] = Query(default=None, alias="toDate"),
        party_id: Optional[int] = Query(default=None, alias="partyId"),
        search: Optional[str] = Query(default=None),
        page: int = Query(default=1, ge=1),
        page_size: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, alias="pageSize"),
        session: Session = Depends(get_session),
    ):
        rows, total = emptybags.list_entries(
            session,
            entry_type,
            date_from=date_from,
            date_to=date_to,
            party_id=party_id,
            search=search,
            page=page,
            page_size=page_size,
        )
        return ok(rows, meta=page_meta(total, page, page_size))

    @router.get(path + "/{entry_id}", name=f"get_{path}")
    def get_entry(entry_id: int, session: Session = Depends(get_session)):
        return ok(emptybags.get_entry(session, entry_type, entry_id))

    @router.post(path, status_code=status.HTTP_201_CREATED, name=f"create_{path}")
    def create_entry(body: EmptyBagIn, session: Session = Depends(get_session)):
        with unit_of_work(session, duplicate_message=f"{label} reference number already exists"):
            entry = emptybags.create_entry(session, entry_type, body.model_dump())
        return ok(emptybags.get_entry(session, entry_type, entry.id), message=f"{label} created successfully")

    @router.put(path + "/{entry_id}", name=f"update_{path}")
    def update_entry(entry_id: int, body: EmptyBagUpdate, session: Session = Depends(get_session)):
        patch = body.model_dump(exclude_unset=True)
        if not patch:
            raise ValidationError("Nothing to update")
        with unit_of_work(session, duplicate_message=f"{label} reference number already exists"):
            emptybags.update_entry(session, entry_type, entry_id, patch)
        return ok(emptybags.get_entry(session, entry_type, entry_id), message=f"{label} updated successfully")

    @router.delete(path, name=f"delete_{path}")
    def delete_entries(body: BulkIds, session: Session = Depends(get_session)):
        with unit_of_work(session):
            changed = emptybags.delete_entries(session, entry_type, body.ids)
        return ok({"deletedCount": changed}, message=f"{changed} {label.lower()}(s) deleted successfully")


for _path, _entry_type in (
    ("/emptybags/purchase", "purchase"),
    ("/emptybags/sales", "sale"),
    ("/emptybags/receive", "receive"),
    ("/emptybags/payment", "payment"),
):
    register_emptybag_routes(operations_router, _path, _entry_type)
