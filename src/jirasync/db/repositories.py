"""SQLModel-backed repositories used by the sync engine."""
from typing import List, Optional

from sqlmodel import Session, select

from jirasync.models.query import JqlQuery, ResponseTemplate
from jirasync.models.sync import (
    DetailStatus,
    SyncLog,
    SyncLogDetail,
    SyncStatus,
    SyncType,
    as_utc,
)
from jirasync.sync.history import SyncHistory, SyncHistoryDetail


class QueryRepository:
    def __init__(self, engine):
        self.engine = engine

    def list_active_queries_by_priority(self) -> List[JqlQuery]:
        """Active queries, lowest priority value first (ties broken by name)."""
        with Session(self.engine) as s:
            return list(
                s.exec(
                    select(JqlQuery)
                    .where(JqlQuery.is_active == True)  # noqa: E712
                    .order_by(JqlQuery.priority, JqlQuery.query_name)
                ).all()
            )


class TemplateRepository:
    def __init__(self, engine):
        self.engine = engine

    def find_template_by_id(self, template_id: int) -> Optional[ResponseTemplate]:
        with Session(self.engine) as s:
            return s.get(ResponseTemplate, template_id)

    def find_template_by_name(self, template_name: str) -> Optional[ResponseTemplate]:
        with Session(self.engine) as s:
            return s.exec(
                select(ResponseTemplate).where(ResponseTemplate.template_name == template_name)
            ).first()


class SyncHistoryRepository:
    """
    Persists SyncHistory aggregates as SyncLog + SyncLogDetail rows.

    save() is an upsert for the run row. Details are append-only, so only
    those with a seq above the highest stored seq are inserted.
    """

    def __init__(self, engine):
        self.engine = engine

    def save(self, history: SyncHistory) -> SyncHistory:
        with Session(self.engine) as s:
            row = s.get(SyncLog, history.id)
            if row is None:
                row = SyncLog(id=history.id)
            row.sync_type = history.sync_type.value
            row.sync_status = history.sync_status.value
            row.started_at = history.started_at
            row.completed_at = history.completed_at
            row.triggered_by = history.triggered_by
            row.error_details = history.error_details
            s.add(row)

            stored = s.exec(
                select(SyncLogDetail.seq).where(SyncLogDetail.sync_log_id == history.id)
            ).all()
            last_seq = max(stored) if stored else 0
            for detail in history.details:
                if detail.seq > last_seq:
                    s.add(
                        SyncLogDetail(
                            id=detail.id,
                            sync_log_id=history.id,
                            seq=detail.seq,
                            operation=detail.operation,
                            status=detail.status.value,
                            result=detail.result,
                            processed_at=detail.processed_at,
                        )
                    )
            s.commit()
        return history

    def find_by_id(self, history_id: str) -> Optional[SyncHistory]:
        with Session(self.engine) as s:
            row = s.get(SyncLog, history_id)
            if row is None:
                return None
            return self._restore(s, row)

    def find_recent(self, limit: int = 20) -> List[SyncHistory]:
        """Most recent runs first."""
        with Session(self.engine) as s:
            rows = s.exec(select(SyncLog).order_by(SyncLog.started_at.desc()).limit(limit)).all()
            return [self._restore(s, row) for row in rows]

    @staticmethod
    def _restore(s: Session, row: SyncLog) -> SyncHistory:
        detail_rows = s.exec(
            select(SyncLogDetail)
            .where(SyncLogDetail.sync_log_id == row.id)
            .order_by(SyncLogDetail.seq)
        ).all()
        details = [
            SyncHistoryDetail(
                seq=d.seq,
                operation=d.operation,
                status=DetailStatus(d.status),
                result=d.result,
                processed_at=as_utc(d.processed_at),
                id=d.id,
            )
            for d in detail_rows
        ]
        return SyncHistory(
            id=row.id,
            sync_type=SyncType(row.sync_type),
            triggered_by=row.triggered_by,
            started_at=row.started_at,
            sync_status=SyncStatus(row.sync_status),
            completed_at=row.completed_at,
            error_details=row.error_details,
            details=details,
        )
