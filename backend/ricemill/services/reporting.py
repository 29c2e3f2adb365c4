"""
Read-only aggregates: day book, financial statement, stock register and
stock summaries, document statistics, party ledger and the dashboard.

Cancelled documents (and the stock movements they posted) and inactive
transactions never count. The only write here is ``log_print``.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Optional

from dateutil.relativedelta import relativedelta
from loguru import logger
from sqlalchemy import and_, case, not_, or_
from sqlalchemy.orm import aliased
from sqlmodel import Session, col, func, select

from ricemill.core.errors import NotFoundError, ValidationError
from ricemill.models.common import DocumentStatus, LifecycleStatus
from ricemill.models.documents import Production, Purchase, SalaryRun, Sale
from ricemill.models.hr import Employee
from ricemill.models.ledger import AccountTransaction, PartyPayment, ReportPrintLog, StockMovement
from ricemill.models.reference import AccountHead, Category, Godown, Party, Product
from ricemill.services.balances import money

CANCELLED = DocumentStatus.CANCELLED.value
ACTIVE = LifecycleStatus.ACTIVE.value

_DOC_HEADERS = {"purchase": Purchase, "sale": Sale, "production": Production, "salary": SalaryRun}


def _check_range(date_from: Optional[date], date_to: Optional[date]) -> None:
    if date_from and date_to and date_from > date_to:
        raise ValidationError("'from' date must not be after 'to' date")


def pct_change(current: float, previous: float) -> float:
    if not previous:
        return 0.0
    return round((current - previous) / previous * 100, 2)


# ── Accounts ──────────────────────────────────────────────────────────────────


def _signed_amount():
    return case(
        (AccountTransaction.type == "receive", AccountTransaction.amount),
        (AccountTransaction.type == "payment", -AccountTransaction.amount),
        else_=0.0,
    )


def _type_total(txn_type: str):
    return func.coalesce(
        func.sum(case((AccountTransaction.type == txn_type, AccountTransaction.amount), else_=0.0)), 0.0
    )


def cash_balance_before(session: Session, day: date) -> float:
    """Receives minus payments strictly before ``day``."""
    total = session.exec(
        select(func.coalesce(func.sum(_signed_amount()), 0.0)).where(
            AccountTransaction.status == ACTIVE, AccountTransaction.date < day
        )
    ).one()
    return money(total)


def _transaction_rows(session: Session, *conditions) -> list[dict[str, Any]]:
    from_head = aliased(AccountHead)
    to_head = aliased(AccountHead)
    rows = session.exec(
        select(AccountTransaction, Party.name, from_head.name, to_head.name)
        .outerjoin(Party, AccountTransaction.party_id == Party.id)
        .outerjoin(from_head, AccountTransaction.from_head_id == from_head.id)
        .outerjoin(to_head, AccountTransaction.to_head_id == to_head.id)
        .where(AccountTransaction.status == ACTIVE, *conditions)
        .order_by(AccountTransaction.date, AccountTransaction.created_at, AccountTransaction.id)
    ).all()
    return [
        {
            "sl": n,
            "id": t.id,
            "date": t.date,
            "party": party or "N/A",
            "from_head": fh or "N/A",
            "to_head": th or "N/A",
            "description": t.description or "",
            "reference_no": t.reference_no,
            "amount": t.amount,
        }
        for n, (t, party, fh, th) in enumerate(rows, 1)
    ]


def daily_report(session: Session, day: date) -> dict[str, Any]:
    opening = cash_balance_before(session, day)
    receives = _transaction_rows(session, AccountTransaction.date == day, AccountTransaction.type == "receive")
    payments = _transaction_rows(session, AccountTransaction.date == day, AccountTransaction.type == "payment")
    total_receive = money(sum(r["amount"] for r in receives))
    total_payment = money(sum(p["amount"] for p in payments))
    return {
        "date": day,
        "opening_balance": opening,
        "receives": receives,
        "payments": payments,
        "total_receive": total_receive,
        "total_payment": total_payment,
        "closing_balance": money(opening + total_receive - total_payment),
    }


def daily_summary(session: Session, date_from: date, date_to: date) -> list[dict[str, Any]]:
    _check_range(date_from, date_to)
    rows = session.exec(
        select(
            AccountTransaction.date,
            _type_total("receive").label("total_receive"),
            _type_total("payment").label("total_payment"),
            func.count(case((AccountTransaction.type == "receive", 1))).label("receive_count"),
            func.count(case((AccountTransaction.type == "payment", 1))).label("payment_count"),
        )
        .where(
            AccountTransaction.status == ACTIVE,
            AccountTransaction.date >= date_from,
            AccountTransaction.date <= date_to,
        )
        .group_by(AccountTransaction.date)
        .order_by(AccountTransaction.date)
    ).all()
    return [r._asdict() for r in rows]


def _by_head(session: Session, txn_type: str, head_column, date_from: date, date_to: date) -> list[dict[str, Any]]:
    rows = session.exec(
        select(
            AccountHead.id,
            AccountHead.name,
            func.sum(AccountTransaction.amount).label("amount"),
            func.count(AccountTransaction.id).label("count"),
        )
        .join(AccountHead, head_column == AccountHead.id)
        .where(
            AccountTransaction.status == ACTIVE,
            AccountTransaction.type == txn_type,
            AccountTransaction.date >= date_from,
            AccountTransaction.date <= date_to,
        )
        .group_by(AccountHead.id, AccountHead.name)
        .order_by(AccountHead.name)
    ).all()
    return [
        {"head_id": r.id, "head_name": r.name, "amount": money(r.amount), "count": r.count} for r in rows
    ]


def _unheaded_total(session: Session, txn_type: str, head_column, date_from: date, date_to: date) -> float:
    total = session.exec(
        select(func.coalesce(func.sum(AccountTransaction.amount), 0.0)).where(
            AccountTransaction.status == ACTIVE,
            AccountTransaction.type == txn_type,
            col(head_column).is_(None),
            AccountTransaction.date >= date_from,
            AccountTransaction.date <= date_to,
        )
    ).one()
    return money(total)


def financial_statement(session: Session, date_from: date, date_to: date) -> dict[str, Any]:
    """Receives grouped by destination head, payments by source head, with opening/closing cash."""
    _check_range(date_from, date_to)
    opening = cash_balance_before(session, date_from)
    receives = _by_head(session, "receive", AccountTransaction.to_head_id, date_from, date_to)
    payments = _by_head(session, "payment", AccountTransaction.from_head_id, date_from, date_to)

    # Vouchers without a head still move cash
    for rows, txn_type, column in (
        (receives, "receive", AccountTransaction.to_head_id),
        (payments, "payment", AccountTransaction.from_head_id),
    ):
        other = _unheaded_total(session, txn_type, column, date_from, date_to)
        if other:
            rows.append({"head_id": None, "head_name": "Other", "amount": other, "count": None})

    total_receive = money(sum(r["amount"] for r in receives))
    total_payment = money(sum(p["amount"] for p in payments))
    return {
        "from_date": date_from,
        "to_date": date_to,
        "opening_balance": opening,
        "receives": receives,
        "payments": payments,
        "total_receive": total_receive,
        "total_payment": total_payment,
        "closing_balance": money(opening + total_receive - total_payment),
    }


def financial_statement_details(
    session: Session,
    date_from: date,
    date_to: date,
    head_id: int,
    txn_type: str,
) -> list[dict[str, Any]]:
    _check_range(date_from, date_to)
    if txn_type not in ("receive", "payment"):
        raise ValidationError(f"Invalid transaction type: {txn_type}")
    column = AccountTransaction.to_head_id if txn_type == "receive" else AccountTransaction.from_head_id
    return _transaction_rows(
        session,
        AccountTransaction.type == txn_type,
        column == head_id,
        AccountTransaction.date >= date_from,
        AccountTransaction.date <= date_to,
    )


def _range_totals(session: Session, date_from: date, date_to: date) -> dict[str, float]:
    row = session.exec(
        select(_type_total("receive"), _type_total("payment")).where(
            AccountTransaction.status == ACTIVE,
            AccountTransaction.date >= date_from,
            AccountTransaction.date <= date_to,
        )
    ).one()
    receive, payment = money(row[0]), money(row[1])
    return {"total_receive": receive, "total_payment": payment, "net": money(receive - payment)}


def period_comparison(
    session: Session,
    current: tuple[date, date],
    previous: tuple[date, date],
) -> dict[str, Any]:
    _check_range(*current)
    _check_range(*previous)
    cur = _range_totals(session, *current)
    prev = _range_totals(session, *previous)
    return {
        "current": {"from_date": current[0], "to_date": current[1], **cur},
        "previous": {"from_date": previous[0], "to_date": previous[1], **prev},
        "changes": {key: pct_change(cur[key], prev[key]) for key in cur},
    }


def log_print(session: Session, report_type: str, report_date: Optional[date], printed_by: Optional[str]) -> ReportPrintLog:
    entry = ReportPrintLog(report_type=report_type, report_date=report_date, printed_by=printed_by)
    session.add(entry)
    session.flush()
    logger.info(f"Report printed: {report_type} {report_date} by {printed_by or 'unknown'}")
    return entry


# ── Stock ─────────────────────────────────────────────────────────────────────


def _live_movements():
    """Condition dropping movements posted by cancelled documents."""
    cancelled = or_(
        *(
            and_(
                StockMovement.reference_type == name,
                col(StockMovement.reference_id).in_(select(model.id).where(model.status == CANCELLED)),
            )
            for name, model in _DOC_HEADERS.items()
            if name != "salary"
        )
    )
    return not_(cancelled)


def stock_register(
    session: Session,
    *,
    product_id: Optional[int] = None,
    category_id: Optional[int] = None,
    godown_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> dict[str, Any]:
    """Movements in date order with a running quantity/weight balance."""
    _check_range(date_from, date_to)
    filters = [_live_movements()]
    if product_id:
        filters.append(StockMovement.product_id == product_id)
    if category_id:
        filters.append(StockMovement.category_id == category_id)
    if godown_id:
        filters.append(StockMovement.godown_id == godown_id)

    opening_qty = opening_wt = 0.0
    if date_from:
        row = session.exec(
            select(
                func.coalesce(func.sum(StockMovement.quantity_in - StockMovement.quantity_out), 0.0),
                func.coalesce(func.sum(StockMovement.weight_in - StockMovement.weight_out), 0.0),
            ).where(*filters, StockMovement.date < date_from)
        ).one()
        opening_qty, opening_wt = float(row[0]), float(row[1])

    stmt = (
        select(StockMovement, Product.name, Category.name, Godown.name)
        .join(Product, StockMovement.product_id == Product.id)
        .outerjoin(Category, StockMovement.category_id == Category.id)
        .outerjoin(Godown, StockMovement.godown_id == Godown.id)
        .where(*filters)
    )
    if date_from:
        stmt = stmt.where(StockMovement.date >= date_from)
    if date_to:
        stmt = stmt.where(StockMovement.date <= date_to)
    stmt = stmt.order_by(StockMovement.date, StockMovement.id)

    balance_qty, balance_wt = opening_qty, opening_wt
    entries = []
    for mv, product, category, godown in session.exec(stmt).all():
        balance_qty = round(balance_qty + mv.quantity_in - mv.quantity_out, 3)
        balance_wt = round(balance_wt + mv.weight_in - mv.weight_out, 3)
        entries.append(
            {
                **mv.model_dump(exclude={"created_at"}),
                "product_name": product,
                "category_name": category,
                "godown_name": godown,
                "balance_quantity": balance_qty,
                "balance_weight": balance_wt,
            }
        )
    return {
        "opening_quantity": round(opening_qty, 3),
        "opening_weight": round(opening_wt, 3),
        "entries": entries,
        "closing_quantity": balance_qty,
        "closing_weight": balance_wt,
    }


def _movement_sum(movement_type: str, column):
    return func.coalesce(func.sum(case((StockMovement.movement_type == movement_type, column), else_=0.0)), 0.0)


def _stock_summary(session: Session, *, per_godown: bool, godown_id: Optional[int], category_id: Optional[int]) -> list[dict[str, Any]]:
    group = [Product.id, Product.name, Product.opening_stock, Category.id, Category.name]
    if per_godown:
        group += [Godown.id, Godown.name]

    stmt = (
        select(
            *group,
            _movement_sum("purchase", StockMovement.quantity_in).label("purchase"),
            _movement_sum("sale", StockMovement.quantity_out).label("sales"),
            _movement_sum("production", StockMovement.quantity_in).label("production"),
            func.coalesce(
                func.sum(
                    case(
                        (StockMovement.movement_type == "reversal", StockMovement.quantity_in - StockMovement.quantity_out),
                        else_=0.0,
                    )
                ),
                0.0,
            ).label("adjustment"),
            func.coalesce(func.sum(StockMovement.weight_in - StockMovement.weight_out), 0.0).label("weight"),
        )
        .select_from(StockMovement)
        .join(Product, StockMovement.product_id == Product.id)
        .outerjoin(Category, Product.category_id == Category.id)
        .where(_live_movements())
    )
    if per_godown:
        stmt = stmt.outerjoin(Godown, StockMovement.godown_id == Godown.id)
    if godown_id:
        stmt = stmt.where(StockMovement.godown_id == godown_id)
    if category_id:
        stmt = stmt.where(Product.category_id == category_id)
    stmt = stmt.group_by(*group)
    stmt = stmt.order_by(*([Godown.name] if per_godown else []), Category.name, Product.name)

    result = []
    for r in session.exec(stmt).all():
        # Opening stock is a product-level figure; per godown it starts at zero
        opening = 0.0 if per_godown else float(r[2] or 0)
        current = opening + r.purchase + r.production - r.sales + r.adjustment
        row = {
            "product_id": r[0],
            "product_name": r[1],
            "category_id": r[3],
            "category_name": r[4],
            "opening": opening,
            "purchase": round(r.purchase, 3),
            "sales": round(r.sales, 3),
            "production": round(r.production, 3),
            "adjustment": round(r.adjustment, 3),
            "stock": round(current, 3),
            "weight": round(r.weight, 3),
        }
        if per_godown:
            row.update(godown_id=r[5], godown_name=r[6])
        result.append(row)
    return result


def godown_stocks(session: Session, godown_id: Optional[int] = None, category_id: Optional[int] = None) -> list[dict[str, Any]]:
    return _stock_summary(session, per_godown=True, godown_id=godown_id, category_id=category_id)


def main_stocks(session: Session, category_id: Optional[int] = None, godown_id: Optional[int] = None) -> list[dict[str, Any]]:
    return _stock_summary(session, per_godown=False, godown_id=godown_id, category_id=category_id)


# ── Documents ─────────────────────────────────────────────────────────────────


def document_summary(
    session: Session,
    kind: str,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> dict[str, Any]:
    """Count and totals of non-cancelled documents of one kind."""
    _check_range(date_from, date_to)
    model = _DOC_HEADERS.get(kind)
    if model is None:
        raise ValidationError(f"Unknown document type: {kind}")

    if model is SalaryRun:
        columns = {"total_payable": SalaryRun.total_payable, "total_paid": SalaryRun.total_salary}
    elif model is Production:
        columns = {"total_quantity": Production.total_quantity, "total_weight": Production.total_weight}
    else:
        columns = {
            "total_quantity": model.total_quantity,
            "total_net_weight": model.total_net_weight,
            "total_amount": model.total_amount,
            "current_balance": model.current_balance,
        }

    stmt = select(
        func.count(model.id),
        *(func.coalesce(func.sum(c), 0.0) for c in columns.values()),
    ).where(model.status != CANCELLED)
    if date_from:
        stmt = stmt.where(model.date >= date_from)
    if date_to:
        stmt = stmt.where(model.date <= date_to)
    row = session.exec(stmt).one()
    return {"kind": kind, "count": row[0], **{name: money(v) for name, v in zip(columns, row[1:])}}


def party_ledger(
    session: Session,
    party_id: int,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> dict[str, Any]:
    """
    Every purchase, sale and party payment for one party, oldest first.

    Cancelled documents and deleted vouchers are listed with
    ``cancelled: true``: their balance effect was posted and never reversed,
    so it still sits in the running balance. ``cancelled_effect`` totals
    that part; ``active_balance`` is what the live entries alone give.
    """
    _check_range(date_from, date_to)
    party = session.get(Party, party_id)
    if party is None:
        raise NotFoundError("Party not found")

    entries = []
    for kind, model, settled, sign in (
        ("purchase", Purchase, Purchase.paid_amount, -1),
        ("sale", Sale, Sale.received_amount, 1),
    ):
        stmt = select(
            model.id,
            model.date,
            model.reference_no,
            model.total_amount,
            settled,
            model.current_balance,
            model.status,
            model.balance_applied,
        ).where(model.party_id == party_id)
        for doc_id, day, ref, amount, settled_amount, balance, doc_status, applied in session.exec(stmt).all():
            entries.append(
                {
                    "kind": kind,
                    "id": doc_id,
                    "date": day,
                    "reference_no": ref,
                    "amount": amount,
                    "settled": settled_amount,
                    "current_balance": balance,
                    "cancelled": doc_status == CANCELLED,
                    # Effect on the party's running balance
                    "balance_effect": money(sign * balance) if applied else 0.0,
                }
            )

    for payment in session.exec(select(PartyPayment).where(PartyPayment.party_id == party_id)).all():
        effect = money(payment.amount if payment.type == "payment" else -payment.amount)
        entries.append(
            {
                "kind": f"party_{payment.type}",
                "id": payment.id,
                "date": payment.date,
                "reference_no": payment.reference_no,
                "amount": payment.amount,
                "settled": payment.amount,
                "current_balance": 0.0,
                "cancelled": payment.status != ACTIVE,
                "balance_effect": effect if payment.balance_applied else 0.0,
            }
        )

    # Totals cover the whole history; the date range only narrows the listing
    cancelled_effect = money(sum(e["balance_effect"] for e in entries if e["cancelled"]))
    entries = [
        e
        for e in entries
        if (date_from is None or e["date"] >= date_from) and (date_to is None or e["date"] <= date_to)
    ]
    entries.sort(key=lambda e: (e["date"], e["kind"], e["id"]))
    return {
        "party_id": party.id,
        "party_name": party.name,
        "opening_balance": party.opening_balance,
        "balance": party.balance,
        "active_balance": money(party.balance - cancelled_effect),
        "cancelled_effect": cancelled_effect,
        "entries": entries,
    }


# ── Dashboard ─────────────────────────────────────────────────────────────────


def _month_total(session: Session, model, first: date) -> float:
    last = first + relativedelta(months=1, days=-1)
    total = session.exec(
        select(func.coalesce(func.sum(model.total_amount), 0.0)).where(
            model.status != CANCELLED, model.date >= first, model.date <= last
        )
    ).one()
    return money(total)


def dashboard(session: Session, today: Optional[date] = None) -> dict[str, Any]:
    today = today or date.today()
    this_month = today.replace(day=1)
    last_month = this_month - relativedelta(months=1)

    def count(model, *where) -> int:
        return session.exec(select(func.count()).select_from(model).where(*where)).one()

    monthly_sales = _month_total(session, Sale, this_month)
    last_month_sales = _month_total(session, Sale, last_month)
    today_cash = _range_totals(session, today, today)
    return {
        "date": today,
        "active_parties": count(Party, Party.status == ACTIVE),
        "active_employees": count(Employee, Employee.status == ACTIVE),
        "active_products": count(Product, Product.status == ACTIVE),
        "active_productions": count(Production, Production.status == DocumentStatus.ACTIVE.value),
        "monthly_sales": monthly_sales,
        "last_month_sales": last_month_sales,
        "monthly_growth": pct_change(monthly_sales, last_month_sales),
        "monthly_purchases": _month_total(session, Purchase, this_month),
        "today_receive": today_cash["total_receive"],
        "today_payment": today_cash["total_payment"],
        "cash_balance": cash_balance_before(session, today + relativedelta(days=1)),
    }
