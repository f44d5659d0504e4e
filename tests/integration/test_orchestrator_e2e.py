"""
End-to-end sync runs: real repositories, transformer, reconciler and retry
engine over in-memory SQLite. The Jira client is a MagicMock; sleeps and the
notification sink are mocks, so nothing waits or leaves the process.
"""
from unittest.mock import MagicMock

import pytest
from sqlmodel import Session, select

from conftest import make_issue
from jirasync.config import SyncConfig
from jirasync.db.repositories import (
    QueryRepository,
    SyncHistoryRepository,
    TemplateRepository,
)
from jirasync.jira.client import SearchPage
from jirasync.jira.errors import JiraApiError, JiraAuthenticationError, JiraRateLimitError
from jirasync.models.project import Project
from jirasync.models.query import JqlQuery
from jirasync.models.sync import SyncStatus, SyncType
from jirasync.notifications import Escalator
from jirasync.sync.batch import (
    ITEM_ERROR_OPERATION,
    ITEM_SUCCESS_OPERATION,
    PROGRESS_OPERATION,
    BatchProcessor,
)
from jirasync.sync.orchestrator import SyncOrchestrator
from jirasync.sync.pagination import PaginatedFetcher
from jirasync.sync.reconcile import ProjectReconciler
from jirasync.sync.retry import RetryExecutor, RetryPolicy
from jirasync.sync.transform import RecordTransformer


def serve(issues):
    """search() side effect paging over a fixed issue list."""

    def search(jql, max_results=50, start_at=0):
        chunk = issues[start_at:start_at + max_results]
        return SearchPage(issues=chunk, total=len(issues), start_at=start_at, max_results=max_results)

    return search


class Harness:
    def __init__(self, engine, config: SyncConfig):
        self.client = MagicMock()
        self.sink = MagicMock()
        self.sleep = MagicMock()
        retry = RetryExecutor(
            policy=RetryPolicy.from_config(config),
            escalator=Escalator(self.sink),
            sleep=self.sleep,
            default_retry_after=config.default_retry_after,
        )
        self.history_repository = SyncHistoryRepository(engine)
        self.orchestrator = SyncOrchestrator(
            queries=QueryRepository(engine),
            history_repository=self.history_repository,
            fetcher=PaginatedFetcher(self.client, retry, page_size=config.page_size),
            batch_processor=BatchProcessor(
                transformer=RecordTransformer(TemplateRepository(engine)),
                applier=ProjectReconciler(engine),
                config=config,
            ),
            config=config,
            client=self.client,
        )

    def run(self, sync_type=SyncType.SCHEDULED, triggered_by="system"):
        return self.orchestrator.execute_sync(sync_type, triggered_by)


@pytest.fixture(name="harness")
def harness_fixture(engine, sync_config) -> Harness:
    return Harness(engine, sync_config)


def operations(history):
    return [d.operation for d in history.details]


def project_count(engine) -> int:
    with Session(engine) as s:
        return len(s.exec(select(Project)).all())


# ─── Happy paths ──────────────────────────────────────────────────────────────

class TestSuccessfulRuns:
    def test_no_active_queries_completes(self, harness):
        history = harness.run()

        assert history.sync_status is SyncStatus.COMPLETED
        assert len(history.details) == 1
        assert history.details[0].result == "No active JQL queries found"
        harness.client.search.assert_not_called()

    def test_three_pages_of_issues(self, harness, engine, seeded_query):
        harness.client.search.side_effect = serve([make_issue(f"PRJ-{i}") for i in range(1, 26)])

        history = harness.run()

        assert history.sync_status is SyncStatus.COMPLETED
        assert harness.client.search.call_count == 3
        assert operations(history).count(ITEM_SUCCESS_OPERATION) == 25
        assert operations(history).count("Execute JQL Query") == 3
        assert operations(history)[-1] == "Completed JQL Query"
        progress = [d.result for d in history.details if d.operation == PROGRESS_OPERATION]
        assert progress == ["Progress [Active projects]: 25/25 issues (100.0%), chunk 3/3"]
        assert project_count(engine) == 25
        assert [d.seq for d in history.details] == list(range(1, len(history.details) + 1))

    def test_progress_counts_chunks_across_pages(self, engine, seeded_query):
        config = SyncConfig(batch_size=10, page_size=10, progress_logging_interval=1)
        harness = Harness(engine, config)
        harness.client.search.side_effect = serve([make_issue(f"PRJ-{i}") for i in range(1, 26)])

        history = harness.run()

        progress = [d.result for d in history.details if d.operation == PROGRESS_OPERATION]
        assert len(progress) == 3
        assert progress[0].startswith("Progress [Active projects]: 10/25 issues (40.0%)")
        assert progress[1].startswith("Progress [Active projects]: 20/25 issues (80.0%)")
        assert progress[2].endswith("chunk 3/3")
        assert history.sync_status is SyncStatus.COMPLETED

    def test_zero_results_records_no_issues(self, harness, seeded_query):
        harness.client.search.side_effect = serve([])

        history = harness.run()

        assert history.sync_status is SyncStatus.COMPLETED
        assert any("No issues found" in (d.result or "") for d in history.details)
        assert ITEM_SUCCESS_OPERATION not in operations(history)

    def test_rerun_is_idempotent(self, harness, engine, seeded_query):
        harness.client.search.side_effect = serve([make_issue(f"PRJ-{i}") for i in range(1, 6)])
        harness.run()
        harness.client.search.side_effect = serve([make_issue(f"PRJ-{i}") for i in range(1, 6)])
        second = harness.run()

        assert second.sync_status is SyncStatus.COMPLETED
        assert project_count(engine) == 5

    def test_run_is_persisted(self, harness, seeded_query):
        harness.client.search.side_effect = serve([make_issue("PRJ-1")])

        history = harness.run(SyncType.MANUAL, "alice")
        stored = harness.history_repository.find_by_id(history.id)

        assert stored.sync_status is SyncStatus.COMPLETED
        assert stored.sync_type is SyncType.MANUAL
        assert stored.triggered_by == "alice"
        assert [d.seq for d in stored.details] == [d.seq for d in history.details]

    def test_queries_run_in_priority_order(self, harness, test_session, seeded_template):
        for name, priority in [("second", 20), ("first", 1)]:
            test_session.add(
                JqlQuery(
                    query_name=name,
                    jql_expression=f"labels = {name}",
                    template_id=seeded_template.id,
                    priority=priority,
                )
            )
        test_session.commit()
        harness.client.search.side_effect = serve([])

        harness.run()

        jqls = [c.args[0] for c in harness.client.search.call_args_list]
        assert jqls == ["labels = first", "labels = second"]


# ─── Failure paths ────────────────────────────────────────────────────────────

class TestFailingRuns:
    def test_auth_failure_notifies_once_and_fails(self, harness, seeded_query):
        harness.client.search.side_effect = JiraAuthenticationError("token revoked", status_code=401)

        history = harness.run()

        assert history.sync_status is SyncStatus.FAILED
        assert harness.client.search.call_count == 1
        harness.sleep.assert_not_called()
        harness.sink.notify_auth_failure.assert_called_once_with(
            "token revoked", 401, "Active projects"
        )
        harness.sink.notify_retry_exhausted.assert_not_called()
        error = next(d for d in history.details if d.is_error)
        assert error.operation == "Execute JQL Query"
        assert "Active projects" in error.result

    def test_rate_limit_exhaustion_notifies_with_attempts(self, engine, seeded_query):
        harness = Harness(engine, SyncConfig(page_size=10, max_attempts=3))
        errors = [JiraRateLimitError(f"429 #{i}", retry_after_seconds=5) for i in range(3)]
        harness.client.search.side_effect = errors

        history = harness.run()

        assert history.sync_status is SyncStatus.FAILED
        assert harness.client.search.call_count == 3
        assert [c.args[0] for c in harness.sleep.call_args_list] == [5.0, 5.0]
        harness.sink.notify_retry_exhausted.assert_called_once()
        _, query_name, attempt_count, last_error = harness.sink.notify_retry_exhausted.call_args.args
        assert query_name == "Active projects"
        assert attempt_count == 3
        assert last_error is errors[-1]
        assert "429 #2" in next(d for d in history.details if d.is_error).result

    def test_single_bad_issue_is_isolated(self, harness, engine, seeded_query):
        issues = [make_issue(f"PRJ-{i}") for i in range(1, 6)]
        del issues[2]["key"]
        harness.client.search.side_effect = serve(issues)

        history = harness.run()

        assert history.sync_status is SyncStatus.FAILED
        assert operations(history).count(ITEM_SUCCESS_OPERATION) == 4
        assert operations(history).count(ITEM_ERROR_OPERATION) == 1
        assert project_count(engine) == 4
        assert operations(history)[-1] == "Completed JQL Query"

    def test_failing_query_does_not_stop_the_next(self, harness, test_session, seeded_template):
        for name, priority in [("broken", 1), ("healthy", 2)]:
            test_session.add(
                JqlQuery(
                    query_name=name,
                    jql_expression=f"labels = {name}",
                    template_id=seeded_template.id,
                    priority=priority,
                )
            )
        test_session.commit()
        healthy = serve([make_issue("PRJ-1")])

        def search(jql, max_results=50, start_at=0):
            if jql == "labels = broken":
                raise JiraApiError("bad jql", status_code=400)
            return healthy(jql, max_results, start_at)

        harness.client.search.side_effect = search

        history = harness.run()

        assert history.sync_status is SyncStatus.FAILED
        assert history.error_count == 1
        assert ITEM_SUCCESS_OPERATION in operations(history)
        harness.sink.notify_retry_exhausted.assert_not_called()

    def test_query_list_failure_fails_run(self, harness):
        harness.orchestrator.queries = MagicMock()
        harness.orchestrator.queries.list_active_queries_by_priority.side_effect = RuntimeError(
            "no such table"
        )

        history = harness.run()

        assert history.sync_status is SyncStatus.FAILED
        assert history.details[0].operation == "Fetch Active JQL Queries"
        assert history.details[0].is_error

    def test_history_save_failure_returns_failed_run(self, harness):
        harness.orchestrator.history_repository = MagicMock()
        harness.orchestrator.history_repository.save.side_effect = RuntimeError("disk full")

        history = harness.run()

        assert history.sync_status is SyncStatus.FAILED
        assert history.details[-1].operation == "Unexpected Error"
        assert "disk full" in history.details[-1].result

    def test_failed_detail_save_fails_run(self, harness, seeded_query):
        harness.client.search.side_effect = serve([make_issue("PRJ-1")])
        repository = harness.history_repository
        calls = []

        def save(history):
            calls.append(history.sync_status)
            if len(calls) == 2:
                raise RuntimeError("disk full on detail save")
            return repository.save(history)

        harness.orchestrator.history_repository = MagicMock()
        harness.orchestrator.history_repository.save.side_effect = save

        history = harness.run()

        assert calls[:2] == [SyncStatus.IN_PROGRESS, SyncStatus.IN_PROGRESS]
        assert history.sync_status is SyncStatus.FAILED
        assert history.details[-1].operation == "Unexpected Error"
        assert "disk full on detail save" in history.details[-1].result
        stored = repository.find_by_id(history.id)
        assert stored.sync_status is SyncStatus.FAILED
        assert len(stored.details) == len(history.details)


class TestConnectionCheck:
    def test_reports_client_result(self, harness):
        harness.client.test_connection.return_value = True
        assert harness.orchestrator.test_connection() is True

    def test_never_raises(self, harness):
        harness.client.test_connection.side_effect = RuntimeError("boom")
        assert harness.orchestrator.test_connection() is False
