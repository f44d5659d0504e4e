"""Sync audit log models: one SyncLog per run, one SyncLogDetail per event."""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    """Timezone-aware current time in UTC, used for every stored timestamp."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive values, as SQLite hands them back without an offset."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class SyncType(str, Enum):
    SCHEDULED = "scheduled"
    MANUAL = "manual"


class SyncStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not SyncStatus.IN_PROGRESS


class DetailStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class SyncLog(SQLModel, table=True):
    """Records each sync run for audit and reporting."""

    id: str = Field(primary_key=True)
    sync_type: str = SyncType.SCHEDULED.value
    sync_status: str = SyncStatus.IN_PROGRESS.value
    started_at: datetime = Field(default_factory=utc_now, index=True)
    completed_at: Optional[datetime] = None
    triggered_by: Optional[str] = None
    error_details: Optional[str] = None


class SyncLogDetail(SQLModel, table=True):
    """Append-only audit entry belonging to one SyncLog."""

    id: str = Field(primary_key=True)
    sync_log_id: str = Field(foreign_key="synclog.id", index=True)
    seq: int
    operation: Optional[str] = None
    status: str  # "success" | "error"
    result: Optional[str] = None
    processed_at: datetime = Field(default_factory=utc_now)
