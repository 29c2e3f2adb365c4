"""Shared helpers for counterparty balances and money rounding.

Balance changes are issued as a single SQL ``UPDATE … SET balance = balance +
:delta`` inside the posting transaction. The database serialises concurrent
updates of the same row, so two documents for one party can never lose each
other's effect.
"""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from loguru import logger
from sqlalchemy import case, update
from sqlmodel import Session, SQLModel, func, select

from ricemill.core.errors import NotFoundError
from ricemill.models.common import utcnow
from ricemill.models.documents import Purchase, SalaryLine, SalaryRun, Sale
from ricemill.models.hr import Employee
from ricemill.models.ledger import PartyPayment
from ricemill.models.reference import Party

MONEY_QUANTIZER = Decimal("0.01")

Number = Union[Decimal, int, float, str, None]


def money(amount: Number) -> float:
    """Round to two decimals, half-up, the way the books are kept."""
    if amount in (None, ""):
        return 0.0
    value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    return float(value.quantize(MONEY_QUANTIZER, rounding=ROUND_HALF_UP))


def lock_counterparty(session: Session, model: type[SQLModel], pk: int) -> SQLModel:
    """Load a party/employee row with a row lock, refreshing any cached copy."""
    obj = session.exec(
        select(model)
        .where(model.id == pk)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).first()
    if obj is None:
        raise NotFoundError(f"{model.__name__} {pk} not found")
    return obj


def apply_balance_delta(
    session: Session,
    model: type[SQLModel],
    pk: Optional[int],
    delta: Number,
) -> Optional[float]:
    """Add ``delta`` to ``model.balance`` for row ``pk``; returns the new balance."""
    if not pk:
        return None
    delta = money(delta)
    if not delta:
        return None

    result = session.execute(
        update(model)
        .where(model.id == pk)
        .values(balance=model.balance + delta, updated_at=utcnow())
    )
    if result.rowcount == 0:
        raise NotFoundError(f"{model.__name__} {pk} not found")

    new_balance = session.exec(select(model.balance).where(model.id == pk)).one()
    logger.debug(f"{model.__name__} {pk} balance {delta:+.2f} -> {new_balance:.2f}")
    return new_balance


def party_balance_from_documents(session: Session, party_id: int) -> float:
    """
    Rebuild a party's running balance from every document and party payment
    that posted to it.

    Cancelled documents and deleted vouchers stay included: cancellation
    never reverses a balance, only an explicit offsetting document does.
    """
    party = session.get(Party, party_id)
    if party is None:
        raise NotFoundError(f"Party {party_id} not found")

    sold = session.exec(
        select(func.coalesce(func.sum(Sale.current_balance), 0.0)).where(
            Sale.party_id == party_id,
            Sale.balance_applied == True,  # noqa: E712
        )
    ).one()
    bought = session.exec(
        select(func.coalesce(func.sum(Purchase.current_balance), 0.0)).where(
            Purchase.party_id == party_id,
            Purchase.balance_applied == True,  # noqa: E712
        )
    ).one()
    paid = session.exec(
        select(
            func.coalesce(
                func.sum(case((PartyPayment.type == "payment", PartyPayment.amount), else_=-PartyPayment.amount)),
                0.0,
            )
        ).where(
            PartyPayment.party_id == party_id,
            PartyPayment.balance_applied == True,  # noqa: E712
        )
    ).one()
    return money(float(party.opening_balance or 0) + float(sold) - float(bought) + float(paid))


def employee_balance_from_salary(session: Session, employee_id: int) -> float:
    """Rebuild an employee's unpaid salary from every posted salary run."""
    if session.get(Employee, employee_id) is None:
        raise NotFoundError(f"Employee {employee_id} not found")
    owed = session.exec(
        select(func.coalesce(func.sum(SalaryLine.payable - SalaryLine.payment), 0.0))
        .join(SalaryRun, SalaryLine.salary_run_id == SalaryRun.id)
        .where(
            SalaryLine.employee_id == employee_id,
            SalaryRun.balance_applied == True,  # noqa: E712
        )
    ).one()
    return money(owed)


def recompute_party_balance(session: Session, party_id: int) -> tuple[float, float]:
    """
    Overwrite the stored running balance with the value rebuilt from documents.

    Returns (old_balance, new_balance). Intended for audits; the caller owns
    the transaction.
    """
    party = lock_counterparty(session, Party, party_id)
    old = money(party.balance)
    new = party_balance_from_documents(session, party_id)
    if old != new:
        logger.warning(f"Party {party_id} balance drift: stored {old:.2f}, rebuilt {new:.2f}")
    party.balance = new
    party.updated_at = utcnow()
    session.add(party)
    return old, new
