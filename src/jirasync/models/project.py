"""Projects reconciled from Jira issues."""
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from jirasync.models.sync import utc_now


class Project(SQLModel, table=True):
    """One row per Jira issue that represents a project."""

    id: Optional[int] = Field(default=None, primary_key=True)
    jira_issue_key: str = Field(unique=True, index=True)
    name: str
    description: Optional[str] = None
    status: str = "ACTIVE"  # PLANNING, ACTIVE, COMPLETED, CANCELLED
    jira_project_key: Optional[str] = None
    reporter: Optional[str] = None

    # Output of the query's response template, kept verbatim
    custom_fields_json: Optional[str] = None

    created_at: datetime = Field(default_factory=utc_now)
    synced_at: datetime = Field(default_factory=utc_now)
