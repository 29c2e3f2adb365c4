"""
Reference-number generator.

Numbers look like ``PUR-2025-00042``. The counter row for a
(document type, period) pair is created on first use and then incremented
by the database itself (``value = value + 1``) inside the caller's
transaction, so two concurrent postings can never read the same value and a
number only exists if the document that consumed it was committed.
"""
from __future__ import annotations

from sqlalchemy import insert as sa_insert
from sqlalchemy import update
from sqlmodel import Session, select

from ricemill.core.config import settings
from ricemill.core.errors import ValidationError
from ricemill.models.common import utcnow
from ricemill.models.ledger import SequenceCounter

# Generated numbers already typed in by hand are skipped, up to this many
MAX_REFERENCE_SKIPS = 1000

PREFIXES: dict[str, str] = {
    "purchase": "PUR",
    "sale": "SAL",
    "production": "PRD",
    "salary": "SLR",
    "emptybag_purchase": "EBP",
    "emptybag_sale": "EBS",
    "emptybag_receive": "EBR",
    "emptybag_payment": "EBY",
}


def prefix_for(doc_type: str) -> str:
    try:
        return PREFIXES[doc_type]
    except KeyError:
        raise ValidationError(f"Unknown document type: {doc_type}")


def format_reference(doc_type: str, period: str, value: int) -> str:
    width = settings.REFERENCE_NUMBER_WIDTH
    return f"{prefix_for(doc_type)}-{period}-{value:0{width}d}"


def _insert_if_absent(session: Session, doc_type: str, period: str) -> None:
    """Create the counter row at 0 unless it already exists, without a prior read."""
    values = {"doc_type": doc_type, "period": period, "value": 0, "updated_at": utcnow()}
    dialect = session.get_bind().dialect.name

    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert

        stmt = insert(SequenceCounter).values(**values).on_conflict_do_nothing(
            index_elements=["doc_type", "period"]
        )
    elif dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert

        stmt = insert(SequenceCounter).values(**values).on_conflict_do_nothing(
            index_elements=["doc_type", "period"]
        )
    elif dialect in ("mysql", "mariadb"):
        stmt = sa_insert(SequenceCounter).values(**values).prefix_with("IGNORE")
    else:
        # Unique constraint is the backstop here: a racing insert fails the
        # whole posting instead of issuing a duplicate number
        exists = session.exec(
            select(SequenceCounter.id).where(
                SequenceCounter.doc_type == doc_type, SequenceCounter.period == period
            )
        ).first()
        if exists is not None:
            return
        stmt = sa_insert(SequenceCounter).values(**values)

    session.execute(stmt)


def next_reference_number(session: Session, doc_type: str, period: str | int) -> str:
    """
    Atomically take the next number for (doc_type, period).

    Must be called inside the unit of work that persists the document; if
    that transaction rolls back, the increment rolls back with it.
    """
    period = str(period)
    prefix_for(doc_type)  # reject unknown types before touching the table

    _insert_if_absent(session, doc_type, period)
    session.execute(
        update(SequenceCounter)
        .where(SequenceCounter.doc_type == doc_type, SequenceCounter.period == period)
        .values(value=SequenceCounter.value + 1, updated_at=utcnow())
    )
    value = session.exec(
        select(SequenceCounter.value).where(
            SequenceCounter.doc_type == doc_type, SequenceCounter.period == period
        )
    ).one()
    return format_reference(doc_type, period, value)


def current_value(session: Session, doc_type: str, period: str | int) -> int:
    """Last number issued for (doc_type, period), 0 if none."""
    value = session.exec(
        select(SequenceCounter.value).where(
            SequenceCounter.doc_type == doc_type, SequenceCounter.period == str(period)
        )
    ).first()
    return value or 0
