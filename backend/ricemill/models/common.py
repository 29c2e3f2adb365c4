"""Status values and the timestamp default shared by every table."""
from datetime import datetime, timezone
from enum import Enum


def utcnow() -> datetime:
    """Timezone-aware current time for created_at/updated_at columns."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands stored timestamps back without tzinfo; they were written in UTC."""
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class LifecycleStatus(str, Enum):
    """Soft-delete state of reference data (categories, parties, heads …)."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class DocumentStatus(str, Enum):
    """Document lifecycle: active -> completed -> cancelled (terminal)."""

    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Allowed forward moves; cancelled has none
DOCUMENT_TRANSITIONS: dict[str, set[str]] = {
    DocumentStatus.ACTIVE.value: {DocumentStatus.COMPLETED.value, DocumentStatus.CANCELLED.value},
    DocumentStatus.COMPLETED.value: {DocumentStatus.CANCELLED.value},
    DocumentStatus.CANCELLED.value: set(),
}
