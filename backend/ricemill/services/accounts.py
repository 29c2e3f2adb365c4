"""
Cash/bank vouchers posted against account heads, and party payment vouchers.

Account transactions only move cash between heads. Party payments also
post to the party's running balance, once, under the same row lock the
document postings use.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Optional

from loguru import logger
from sqlalchemy.orm import aliased
from sqlmodel import Session, col, func, select

from ricemill.core.errors import NotFoundError, ValidationError
from ricemill.models.common import LifecycleStatus, utcnow
from ricemill.models.ledger import AccountTransaction, PartyPayment
from ricemill.models.reference import AccountHead, Party
from ricemill.services.balances import apply_balance_delta, lock_counterparty, money

TRANSACTION_TYPES = ("receive", "payment")

# Explicit null is ignored for these; other fields may be cleared
_REQUIRED_FIELDS = {"date", "type", "amount"}

FromHead = aliased(AccountHead)
ToHead = aliased(AccountHead)


def _check_refs(session: Session, data: dict[str, Any]) -> None:
    for column, model, label in (
        ("party_id", Party, "Party"),
        ("from_head_id", AccountHead, "Account head"),
        ("to_head_id", AccountHead, "Account head"),
    ):
        pk = data.get(column)
        if pk is None:
            continue
        obj = session.get(model, pk)
        if obj is None:
            raise NotFoundError(f"{label} {pk} not found")
        if obj.status != LifecycleStatus.ACTIVE.value:
            raise ValidationError(f"{label} {pk} is inactive")


def _validate(data: dict[str, Any]) -> None:
    if "type" in data and data["type"] not in TRANSACTION_TYPES:
        raise ValidationError(f"Invalid transaction type: {data['type']}")
    if "amount" in data and (data["amount"] is None or data["amount"] <= 0):
        raise ValidationError("Amount must be greater than 0")


def transaction_row(txn: AccountTransaction, party: Optional[str], from_head: Optional[str], to_head: Optional[str]) -> dict[str, Any]:
    return {
        **txn.model_dump(),
        "party_name": party,
        "from_head_name": from_head,
        "to_head_name": to_head,
    }


def _joined():
    return (
        select(AccountTransaction, Party.name, FromHead.name, ToHead.name)
        .outerjoin(Party, AccountTransaction.party_id == Party.id)
        .outerjoin(FromHead, AccountTransaction.from_head_id == FromHead.id)
        .outerjoin(ToHead, AccountTransaction.to_head_id == ToHead.id)
    )


def list_transactions(
    session: Session,
    *,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    txn_type: Optional[str] = None,
    party_id: Optional[int] = None,
    head_id: Optional[int] = None,
    page: int = 1,
    page_size: int = 25,
) -> tuple[list[dict[str, Any]], int]:
    stmt = _joined().where(AccountTransaction.status == LifecycleStatus.ACTIVE.value)
    if date_from:
        stmt = stmt.where(AccountTransaction.date >= date_from)
    if date_to:
        stmt = stmt.where(AccountTransaction.date <= date_to)
    if txn_type:
        stmt = stmt.where(AccountTransaction.type == txn_type)
    if party_id:
        stmt = stmt.where(AccountTransaction.party_id == party_id)
    if head_id:
        stmt = stmt.where(
            (AccountTransaction.from_head_id == head_id) | (AccountTransaction.to_head_id == head_id)
        )

    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()
    stmt = stmt.order_by(col(AccountTransaction.date).desc(), col(AccountTransaction.id).desc())
    rows = session.exec(stmt.offset((page - 1) * page_size).limit(page_size)).all()
    return [transaction_row(*r) for r in rows], total


def get_transaction(session: Session, txn_id: int) -> dict[str, Any]:
    row = session.exec(_joined().where(AccountTransaction.id == txn_id)).first()
    if row is None:
        raise NotFoundError("Transaction not found")
    return transaction_row(*row)


def create_transaction(session: Session, data: dict[str, Any]) -> AccountTransaction:
    for required in ("date", "type", "amount"):
        if data.get(required) is None:
            raise ValidationError("Date, type and amount are required")
    _validate(data)
    _check_refs(session, data)

    txn = AccountTransaction(**{**data, "amount": money(data["amount"])})
    session.add(txn)
    session.flush()
    logger.info(f"Posted {txn.type} transaction {txn.id} amount {txn.amount:.2f}")
    return txn


def update_transaction(session: Session, txn_id: int, patch: dict[str, Any]) -> AccountTransaction:
    txn = session.get(AccountTransaction, txn_id)
    if txn is None:
        raise NotFoundError("Transaction not found")
    if txn.status != LifecycleStatus.ACTIVE.value:
        raise ValidationError("Transaction is deleted and cannot be changed")

    patch = {
        k: v
        for k, v in patch.items()
        if k not in ("id", "status", "created_at") and (v is not None or k not in _REQUIRED_FIELDS)
    }
    _validate(patch)
    _check_refs(session, patch)
    if "amount" in patch:
        patch["amount"] = money(patch["amount"])
    for key, value in patch.items():
        setattr(txn, key, value)
    txn.updated_at = utcnow()
    session.add(txn)
    session.flush()
    logger.info(f"Updated transaction {txn_id}")
    return txn


def delete_transactions(session: Session, ids: list[int]) -> int:
    """Soft delete: mark inactive so reports drop them. All ids must exist."""
    ids = list(dict.fromkeys(ids))
    if not ids:
        raise ValidationError("Please provide the transaction IDs to delete")
    rows = list(session.exec(select(AccountTransaction).where(col(AccountTransaction.id).in_(ids))).all())
    missing = sorted(set(ids) - {r.id for r in rows})
    if missing:
        raise NotFoundError(f"Transaction(s) not found: {', '.join(map(str, missing))}")

    changed = 0
    for txn in rows:
        if txn.status == LifecycleStatus.ACTIVE.value:
            txn.status = LifecycleStatus.INACTIVE.value
            txn.updated_at = utcnow()
            session.add(txn)
            changed += 1
    session.flush()
    logger.info(f"Deleted {changed} transaction(s)")
    return changed


# ── Party payments ────────────────────────────────────────────────────────────


def payment_effect(payment_type: str, amount: float) -> float:
    """Change to the party's running balance: paying them raises it, receiving lowers it."""
    return money(amount if payment_type == "payment" else -amount)


def party_payment_row(payment: PartyPayment, party: Optional[str], head: Optional[str]) -> dict[str, Any]:
    return {
        **payment.model_dump(exclude={"balance_applied"}),
        "party_name": party,
        "head_name": head,
    }


def _payments_joined():
    return (
        select(PartyPayment, Party.name, AccountHead.name)
        .outerjoin(Party, PartyPayment.party_id == Party.id)
        .outerjoin(AccountHead, PartyPayment.head_id == AccountHead.id)
    )


def list_party_payments(
    session: Session,
    *,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    payment_type: Optional[str] = None,
    party_id: Optional[int] = None,
    page: int = 1,
    page_size: int = 25,
) -> tuple[list[dict[str, Any]], int]:
    stmt = _payments_joined().where(PartyPayment.status == LifecycleStatus.ACTIVE.value)
    if date_from:
        stmt = stmt.where(PartyPayment.date >= date_from)
    if date_to:
        stmt = stmt.where(PartyPayment.date <= date_to)
    if payment_type:
        stmt = stmt.where(PartyPayment.type == payment_type)
    if party_id:
        stmt = stmt.where(PartyPayment.party_id == party_id)

    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()
    stmt = stmt.order_by(col(PartyPayment.date).desc(), col(PartyPayment.created_at).desc())
    rows = session.exec(stmt.offset((page - 1) * page_size).limit(page_size)).all()
    return [party_payment_row(*r) for r in rows], total


def get_party_payment(session: Session, payment_id: int) -> dict[str, Any]:
    row = session.exec(
        _payments_joined().where(
            PartyPayment.id == payment_id, PartyPayment.status == LifecycleStatus.ACTIVE.value
        )
    ).first()
    if row is None:
        raise NotFoundError("Party payment not found")
    return party_payment_row(*row)


def _check_payment_refs(session: Session, data: dict[str, Any]) -> None:
    _check_refs(session, {"party_id": data.get("party_id"), "from_head_id": data.get("head_id")})


def create_party_payment(session: Session, data: dict[str, Any]) -> PartyPayment:
    for required in ("date", "type", "party_id", "amount"):
        if data.get(required) is None:
            raise ValidationError("Date, type, party and amount are required")
    _validate(data)
    party = lock_counterparty(session, Party, data["party_id"])
    _check_payment_refs(session, data)

    payment = PartyPayment(**{**data, "amount": money(data["amount"])})
    session.add(payment)
    session.flush()
    apply_balance_delta(session, Party, party.id, payment_effect(payment.type, payment.amount))
    payment.balance_applied = True
    session.add(payment)
    session.flush()
    logger.info(f"Party payment {payment.id}: {payment.type} {payment.amount:.2f} with party {party.id}")
    return payment


def update_party_payment(session: Session, payment_id: int, patch: dict[str, Any]) -> PartyPayment:
    """
    Edit a voucher. When amount, type or party change, the old effect is
    taken off the old party and the new one applied, in one transaction.
    """
    payment = session.get(PartyPayment, payment_id)
    if payment is None or payment.status != LifecycleStatus.ACTIVE.value:
        raise NotFoundError("Party payment not found")

    patch = {
        k: v
        for k, v in patch.items()
        if k not in ("id", "status", "created_at", "balance_applied", "created_by")
        and (v is not None or k not in _REQUIRED_FIELDS | {"party_id"})
    }
    _validate(patch)
    _check_payment_refs(session, patch)

    old_party, old_effect = payment.party_id, payment_effect(payment.type, payment.amount)
    new_party = patch.get("party_id", payment.party_id)
    for pk in sorted({old_party, new_party}):
        lock_counterparty(session, Party, pk)

    if "amount" in patch:
        patch["amount"] = money(patch["amount"])
    for key, value in patch.items():
        setattr(payment, key, value)
    new_effect = payment_effect(payment.type, payment.amount)

    if payment.balance_applied and (old_party, old_effect) != (new_party, new_effect):
        apply_balance_delta(session, Party, old_party, -old_effect)
        apply_balance_delta(session, Party, new_party, new_effect)

    payment.updated_at = utcnow()
    session.add(payment)
    session.flush()
    logger.info(f"Updated party payment {payment_id}")
    return payment


def delete_party_payments(session: Session, ids: list[int]) -> int:
    """
    Soft delete. Like document cancellation this leaves the posted balance
    effect in place; a correcting voucher reverses it.
    """
    ids = list(dict.fromkeys(ids))
    if not ids:
        raise ValidationError("Please provide the party payment IDs to delete")
    rows = list(session.exec(select(PartyPayment).where(col(PartyPayment.id).in_(ids))).all())
    missing = sorted(set(ids) - {r.id for r in rows})
    if missing:
        raise NotFoundError(f"Party payment(s) not found: {', '.join(map(str, missing))}")

    changed = 0
    for payment in rows:
        if payment.status == LifecycleStatus.ACTIVE.value:
            payment.status = LifecycleStatus.INACTIVE.value
            payment.updated_at = utcnow()
            session.add(payment)
            changed += 1
    session.flush()
    logger.info(f"Deleted {changed} party payment(s)")
    return changed
