"""Operator-defined JQL queries and the response templates they render with."""
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from jirasync.models.sync import utc_now


class ResponseTemplate(SQLModel, table=True):
    """Jinja2 template mapping a raw Jira issue to the query's custom fields."""

    id: Optional[int] = Field(default=None, primary_key=True)
    template_name: str = Field(unique=True, index=True)
    template_body: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class JqlQuery(SQLModel, table=True):
    """One saved search. Lower priority runs first; inactive queries are skipped."""

    id: Optional[int] = Field(default=None, primary_key=True)
    query_name: str
    jql_expression: str
    template_id: int = Field(foreign_key="responsetemplate.id")
    priority: int = Field(default=100, index=True)
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
