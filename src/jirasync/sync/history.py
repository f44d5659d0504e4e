"""
SyncHistory: the audit aggregate built up during one sync run.

A run starts IN_PROGRESS, collects append-only details while the orchestrator
works, and transitions to COMPLETED or FAILED exactly once. After the terminal
transition the aggregate is read-only.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from jirasync.models.sync import DetailStatus, SyncStatus, SyncType, as_utc, utc_now


class InvalidStateTransition(RuntimeError):
    """Raised when a finished run is mutated or finished a second time."""


def _normalize(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    text = text.strip()
    return text or None


@dataclass(frozen=True)
class SyncHistoryDetail:
    """One audit entry. Frozen: details are never edited after creation."""

    seq: int
    operation: Optional[str]
    status: DetailStatus
    result: Optional[str]
    processed_at: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def is_success(self) -> bool:
        return self.status is DetailStatus.SUCCESS

    @property
    def is_error(self) -> bool:
        return self.status is DetailStatus.ERROR


class SyncHistory:
    """Aggregate root for one run: status, timestamps and ordered details."""

    def __init__(
        self,
        id: str,
        sync_type: SyncType,
        triggered_by: Optional[str],
        started_at: datetime,
        sync_status: SyncStatus = SyncStatus.IN_PROGRESS,
        completed_at: Optional[datetime] = None,
        error_details: Optional[str] = None,
        details: Optional[List[SyncHistoryDetail]] = None,
    ):
        self.id = id
        self.sync_type = sync_type
        self.triggered_by = triggered_by
        self.started_at = as_utc(started_at)
        self._status = sync_status
        self._completed_at = as_utc(completed_at)
        self._error_details = error_details
        self._details: List[SyncHistoryDetail] = list(details or [])

    @classmethod
    def start(cls, sync_type: SyncType, triggered_by: Optional[str]) -> "SyncHistory":
        """Create a new IN_PROGRESS run."""
        if sync_type is None:
            raise ValueError("sync_type is required")
        return cls(
            id=str(uuid.uuid4()),
            sync_type=SyncType(sync_type),
            triggered_by=_normalize(triggered_by),
            started_at=utc_now(),
        )

    # ─── Read access ──────────────────────────────────────────────────────────

    @property
    def sync_status(self) -> SyncStatus:
        return self._status

    @property
    def completed_at(self) -> Optional[datetime]:
        return self._completed_at

    @property
    def error_details(self) -> Optional[str]:
        return self._error_details

    @property
    def details(self) -> Tuple[SyncHistoryDetail, ...]:
        return tuple(self._details)

    @property
    def is_in_progress(self) -> bool:
        return self._status is SyncStatus.IN_PROGRESS

    @property
    def has_errors(self) -> bool:
        return any(d.is_error for d in self._details)

    @property
    def error_count(self) -> int:
        return sum(1 for d in self._details if d.is_error)

    @property
    def success_count(self) -> int:
        return sum(1 for d in self._details if d.is_success)

    @property
    def duration_seconds(self) -> float:
        end = self._completed_at or utc_now()
        return max(0.0, (end - self.started_at).total_seconds())

    # ─── Mutation ─────────────────────────────────────────────────────────────

    def add_detail(self, operation: str, status: DetailStatus, result: Optional[str]) -> SyncHistoryDetail:
        """Append a detail; seq is assigned from the current detail count."""
        self._require_in_progress("add a detail to")
        status = DetailStatus(status)
        if status is DetailStatus.ERROR:
            result = _normalize(result)
        detail = SyncHistoryDetail(
            seq=len(self._details) + 1,
            operation=_normalize(operation),
            status=status,
            result=result,
        )
        self._details.append(detail)
        return detail

    def add_success(self, operation: str, result: Optional[str]) -> SyncHistoryDetail:
        return self.add_detail(operation, DetailStatus.SUCCESS, result)

    def add_error(self, operation: str, result: Optional[str]) -> SyncHistoryDetail:
        return self.add_detail(operation, DetailStatus.ERROR, result)

    def finish(self) -> SyncStatus:
        """
        Terminal transition decided by the details: FAILED if any detail is
        an error, COMPLETED otherwise.
        """
        if self.has_errors:
            self.fail(f"{self.error_count} error detail(s) recorded during sync")
        else:
            self.complete()
        return self._status

    def complete(self) -> None:
        self._require_in_progress("complete")
        if self.has_errors:
            raise InvalidStateTransition("a run with error details cannot complete")
        self._status = SyncStatus.COMPLETED
        self._completed_at = utc_now()

    def fail(self, error_details: Optional[str]) -> None:
        self._require_in_progress("fail")
        if not self.has_errors:
            # FAILED always has at least one error detail to point at
            self.add_error("Sync Failed", error_details or "sync failed")
        self._status = SyncStatus.FAILED
        self._completed_at = utc_now()
        self._error_details = _normalize(error_details)

    def _require_in_progress(self, action: str) -> None:
        if not self.is_in_progress:
            raise InvalidStateTransition(
                f"cannot {action} a sync that is not in progress (status: {self._status.value})"
            )

    def __repr__(self) -> str:
        return (
            f"SyncHistory(id={self.id!r}, type={self.sync_type.value}, "
            f"status={self._status.value}, details={len(self._details)})"
        )
