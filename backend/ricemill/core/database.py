"""SQLModel database engine, session management and the unit of work."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import SQLModel, create_engine, Session

from ricemill.core.config import settings
from ricemill.core.errors import AppError, DuplicateError, PersistenceError

# Import models so SQLModel.metadata knows about all tables
import ricemill.models.reference  # noqa: F401
import ricemill.models.documents  # noqa: F401
import ricemill.models.ledger  # noqa: F401
import ricemill.models.hr  # noqa: F401

_is_sqlite = settings.DATABASE_URL.startswith("sqlite")

# SQLite: allow use from FastAPI's threadpool and wait on the write lock
# instead of failing immediately when two postings overlap
engine = create_engine(
    settings.DATABASE_URL,
    connect_args=(
        {"check_same_thread": False, "timeout": settings.DB_LOCK_TIMEOUT}
        if _is_sqlite
        else {}
    ),
    echo=False,
)


def create_db_and_tables() -> None:
    """Create all tables defined in SQLModel models."""
    SQLModel.metadata.create_all(engine)


def get_session():
    """FastAPI dependency: yields a SQLModel session."""
    with Session(engine) as session:
        yield session


def _is_unique_violation(exc: IntegrityError) -> bool:
    text = str(exc.orig).lower()
    return "unique" in text or "duplicate" in text


@contextmanager
def unit_of_work(
    session: Session,
    duplicate_message: Optional[str] = None,
) -> Iterator[Session]:
    """
    All-or-nothing block: commit when the body finishes, roll back on any error.

    Unique-constraint violations surface as DuplicateError (with
    ``duplicate_message`` when given); every other database failure becomes a
    generic PersistenceError so no internal detail reaches the client.
    """
    try:
        yield session
        session.commit()
    except AppError:
        session.rollback()
        raise
    except IntegrityError as exc:
        session.rollback()
        if _is_unique_violation(exc):
            logger.info(f"Unique constraint rejected write: {exc.orig}")
            raise DuplicateError(duplicate_message or "Record already exists") from exc
        logger.error(f"Integrity error, transaction rolled back: {exc.orig}")
        raise PersistenceError() from exc
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error(f"Database error, transaction rolled back: {exc}")
        raise PersistenceError() from exc
    except Exception:
        session.rollback()
        raise
