"""
Applies canonical issue documents to the Project table.

Idempotency: jira_issue_key is unique. An existing row is updated in place
(the tracker is the source of truth), otherwise a new row is inserted.
"""
import json
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from jirasync.models.project import Project
from jirasync.models.sync import utc_now

logger = logging.getLogger(__name__)

_STATUS_MAP = {
    "done": "COMPLETED",
    "closed": "COMPLETED",
    "resolved": "COMPLETED",
    "cancelled": "CANCELLED",
    "canceled": "CANCELLED",
    "won't do": "CANCELLED",
    "to do": "PLANNING",
    "open": "PLANNING",
    "backlog": "PLANNING",
}


class ReconciliationError(Exception):
    """The canonical document could not be applied to stored projects."""


def map_status(tracker_status: Optional[str]) -> str:
    if not tracker_status:
        return "ACTIVE"
    return _STATUS_MAP.get(tracker_status.strip().lower(), "ACTIVE")


def project_fields(document: Dict[str, Any]) -> Dict[str, Any]:
    """Project columns from a canonical document. Raises ReconciliationError."""
    issue_key = document.get("issueKey")
    if not issue_key:
        raise ReconciliationError("Canonical document has no issueKey")

    custom = document.get("customFields")
    return {
        "jira_issue_key": issue_key,
        "name": document.get("projectName") or issue_key,
        "description": document.get("description"),
        "status": map_status(document.get("status")),
        "jira_project_key": document.get("projectKey"),
        "reporter": document.get("reporter"),
        "custom_fields_json": json.dumps(custom) if custom is not None else None,
    }


class ProjectReconciler:
    """Upserts one Project per canonical document."""

    def __init__(self, engine):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
        """
        self.engine = engine

    def apply_changes(self, canonical_json: str, history=None) -> Project:
        """
        Create or update the Project described by ``canonical_json``.

        Args:
            canonical_json: Output of RecordTransformer.transform().
            history: The running SyncHistory, used for log context only.

        Returns:
            The persisted Project row.

        Raises:
            ReconciliationError: invalid document or database failure.
        """
        try:
            document = json.loads(canonical_json)
        except (TypeError, ValueError) as exc:
            raise ReconciliationError(f"Canonical JSON could not be parsed: {exc}") from exc
        if not isinstance(document, dict):
            raise ReconciliationError("Canonical JSON must be an object")

        fields = project_fields(document)
        run_id = getattr(history, "id", None)

        try:
            with Session(self.engine) as s:
                existing = s.exec(
                    select(Project).where(Project.jira_issue_key == fields["jira_issue_key"])
                ).first()

                if existing:
                    for k, v in fields.items():
                        setattr(existing, k, v)
                    existing.synced_at = utc_now()
                    project = existing
                    action = "updated"
                else:
                    project = Project(**fields)
                    action = "created"

                s.add(project)
                s.commit()
                s.refresh(project)
        except SQLAlchemyError as exc:
            raise ReconciliationError(
                f"Failed to persist project {fields['jira_issue_key']}: {exc}"
            ) from exc

        logger.info(
            "Project %s %s from %s (run %s)",
            project.id, action, fields["jira_issue_key"], run_id,
        )
        return project
