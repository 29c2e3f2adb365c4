"""
Report routes, print logs, the party balance audit and health.

  GET  /api/health
  GET  /api/dashboard
  GET  /api/stocks/register
  GET  /api/stocks/godown-stocks
  GET  /api/stocks/main-stocks
  GET  /api/stocks/emptybag-stocks
  GET  /api/reporting/daily-report
  GET  /api/reporting/daily-report/summary
  POST /api/reporting/daily-report/print
  GET  /api/reporting/financial-statement
  GET  /api/reporting/financial-statement/details
  GET  /api/reporting/financial-statement/comparison
  POST /api/reporting/financial-statement/print
  GET  /api/reporting/documents/{kind}
  GET  /api/party/parties/{party_id}/ledger
  POST /api/party/parties/{party_id}/recompute-balance
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import text
from sqlmodel import Session

from ricemill.core.database import get_session, unit_of_work
from ricemill.schemas.envelope import ok
from ricemill.schemas.reference import PrintLogIn
from ricemill.services import balances, emptybags, reporting
from ricemill.services.balances import money

health_router = APIRouter(prefix="/api", tags=["health"])
report_router = APIRouter(prefix="/api", tags=["reports"])


@health_router.get("/health")
def health(session: Session = Depends(get_session)):
    session.execute(text("SELECT 1"))
    return ok({"status": "ok", "db": "ok", "version": "1.0.0"})


@report_router.get("/dashboard")
def dashboard(session: Session = Depends(get_session)):
    return ok(reporting.dashboard(session))


# ── Stocks ────────────────────────────────────────────────────────────────────


@report_router.get("/stocks/register")
def stock_register(
    product_id: Optional[int] = Query(default=None, alias="productId"),
    category_id: Optional[int] = Query(default=None, alias="categoryId"),
    godown_id: Optional[int] = Query(default=None, alias="godownId"),
    date_from: Optional[date] = Query(default=None, alias="fromDate"),
    date_to: Optional[date] = Query(default=None, alias="toDate"),
    session: Session = Depends(get_session),
):
    return ok(
        reporting.stock_register(
            session,
            product_id=product_id,
            category_id=category_id,
            godown_id=godown_id,
            date_from=date_from,
            date_to=date_to,
        )
    )


@report_router.get("/stocks/godown-stocks")
def godown_stocks(
    godown_id: Optional[int] = Query(default=None, alias="godownId"),
    category_id: Optional[int] = Query(default=None, alias="categoryId"),
    session: Session = Depends(get_session),
):
    return ok(reporting.godown_stocks(session, godown_id, category_id))


@report_router.get("/stocks/main-stocks")
def main_stocks(
    category_id: Optional[int] = Query(default=None, alias="categoryId"),
    godown_id: Optional[int] = Query(default=None, alias="godownId"),
    session: Session = Depends(get_session),
):
    return ok(reporting.main_stocks(session, category_id, godown_id))


@report_router.get("/stocks/emptybag-stocks")
def emptybag_stocks(
    product_id: Optional[int] = Query(default=None, alias="productId"),
    session: Session = Depends(get_session),
):
    return ok(emptybags.bag_stocks(session, product_id))


# ── Day book & financial statement ────────────────────────────────────────────


@report_router.get("/reporting/daily-report")
def daily_report(day: date = Query(alias="date"), session: Session = Depends(get_session)):
    return ok(reporting.daily_report(session, day))


@report_router.get("/reporting/daily-report/summary")
def daily_summary(
    date_from: date = Query(alias="from"),
    date_to: date = Query(alias="to"),
    session: Session = Depends(get_session),
):
    return ok(reporting.daily_summary(session, date_from, date_to))


def _log_print(request: Request, body: PrintLogIn, session: Session, report_type: str):
    printed_by = body.printed_by or getattr(request.state, "user", None)
    with unit_of_work(session):
        reporting.log_print(session, report_type, body.date, printed_by)
    return ok(message="Print action logged successfully")


@report_router.post("/reporting/daily-report/print")
def print_daily_report(request: Request, body: PrintLogIn, session: Session = Depends(get_session)):
    return _log_print(request, body, session, "daily")


@report_router.get("/reporting/financial-statement")
def financial_statement(
    date_from: date = Query(alias="fromDate"),
    date_to: date = Query(alias="toDate"),
    session: Session = Depends(get_session),
):
    return ok(reporting.financial_statement(session, date_from, date_to))


@report_router.get("/reporting/financial-statement/details")
def financial_statement_details(
    date_from: date = Query(alias="fromDate"),
    date_to: date = Query(alias="toDate"),
    head_id: int = Query(alias="headId"),
    txn_type: str = Query(alias="type"),
    session: Session = Depends(get_session),
):
    return ok(reporting.financial_statement_details(session, date_from, date_to, head_id, txn_type))


@report_router.get("/reporting/financial-statement/comparison")
def period_comparison(
    current_from: date = Query(alias="currentFrom"),
    current_to: date = Query(alias="currentTo"),
    previous_from: date = Query(alias="previousFrom"),
    previous_to: date = Query(alias="previousTo"),
    session: Session = Depends(get_session),
):
    return ok(
        reporting.period_comparison(session, (current_from, current_to), (previous_from, previous_to))
    )


@report_router.post("/reporting/financial-statement/print")
def print_financial_statement(request: Request, body: PrintLogIn, session: Session = Depends(get_session)):
    return _log_print(request, body, session, "financial_statement")


# ── Documents & parties ───────────────────────────────────────────────────────


@report_router.get("/reporting/documents/{kind}")
def document_summary(
    kind: str,
    date_from: Optional[date] = Query(default=None, alias="fromDate"),
    date_to: Optional[date] = Query(default=None, alias="toDate"),
    session: Session = Depends(get_session),
):
    return ok(reporting.document_summary(session, kind, date_from, date_to))


@report_router.get("/party/parties/{party_id}/ledger")
def party_ledger(
    party_id: int,
    date_from: Optional[date] = Query(default=None, alias="fromDate"),
    date_to: Optional[date] = Query(default=None, alias="toDate"),
    session: Session = Depends(get_session),
):
    return ok(reporting.party_ledger(session, party_id, date_from, date_to))


@report_router.post("/party/parties/{party_id}/recompute-balance")
def recompute_party_balance(party_id: int, session: Session = Depends(get_session)):
    """Audit: rebuild the stored running balance from the party's documents."""
    with unit_of_work(session):
        old, new = balances.recompute_party_balance(session, party_id)
    return ok(
        {"party_id": party_id, "previous_balance": old, "balance": new, "drift": money(new - old)},
        message="Party balance recomputed",
    )
