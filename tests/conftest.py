"""Shared test fixtures."""
from typing import Generator

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from jirasync.config import SyncConfig

# Import all models so SQLModel.metadata knows about them
from jirasync.models.project import Project  # noqa: F401
from jirasync.models.query import JqlQuery, ResponseTemplate
from jirasync.models.sync import SyncLog, SyncLogDetail  # noqa: F401

CUSTOM_TEMPLATE_BODY = """{
  "summary": {{ issue.fields.summary | default(none) | tojson }},
  "priority": {{ issue.fields.priority.name | default(none) | tojson }}
}"""


def make_issue(key: str, summary: str = "Project", status: str = "In Progress") -> dict:
    """A raw Jira search issue as returned by /rest/api/2/search."""
    number = key.rsplit("-", 1)[-1]
    return {
        "id": f"10{number}",
        "key": key,
        "fields": {
            "summary": f"{summary} {key}",
            "description": f"Description of {key}",
            "project": {"key": key.split("-")[0], "name": "Projects"},
            "reporter": {"displayName": "Dana Reporter"},
            "created": "2025-01-15T07:30:00.000+0000",
            "updated": "2025-01-16T09:00:00.000+0000",
            "status": {"name": status},
            "priority": {"name": "High"},
        },
    }


def make_search_response(issues, total: int, start_at: int = 0, max_results: int = 50) -> dict:
    return {
        "startAt": start_at,
        "maxResults": max_results,
        "total": total,
        "issues": issues,
    }


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="sync_config")
def sync_config_fixture() -> SyncConfig:
    """Engine options with zero backoff so nothing waits."""
    return SyncConfig(
        batch_size=10,
        page_size=10,
        backoff_base_delay=0.0,
        backoff_max_delay=0.0,
        default_retry_after=0.0,
    )


@pytest.fixture(name="seeded_template")
def seeded_template_fixture(test_session: Session) -> ResponseTemplate:
    """A persisted ResponseTemplate with two custom fields."""
    template = ResponseTemplate(
        template_name="project-summary",
        template_body=CUSTOM_TEMPLATE_BODY,
        description="Summary and priority",
    )
    test_session.add(template)
    test_session.commit()
    test_session.refresh(template)
    return template


@pytest.fixture(name="seeded_query")
def seeded_query_fixture(test_session: Session, seeded_template: ResponseTemplate) -> JqlQuery:
    """A persisted active JqlQuery using seeded_template."""
    query = JqlQuery(
        query_name="Active projects",
        jql_expression="project = PRJ AND issuetype = Epic",
        template_id=seeded_template.id,
        priority=10,
    )
    test_session.add(query)
    test_session.commit()
    test_session.refresh(query)
    return query
