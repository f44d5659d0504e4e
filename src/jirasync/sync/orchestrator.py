"""
SyncOrchestrator: runs every active JQL query and records the run.

Flow for one run:
  1. SyncHistory.start() and save (status IN_PROGRESS)
  2. Load active queries, lowest priority value first
  3. Per query: page through results (retrying per page) and stream the pages
     into the BatchProcessor, which chunks across page boundaries
  4. Save the details while still IN_PROGRESS
  5. finish(): FAILED if any detail is an error, COMPLETED otherwise; save

Isolation boundaries:
  - item:  BatchProcessor records the failure and moves to the next issue
  - query: any exception from a query becomes an error detail; next query runs
  - run:   anything escaping the above (e.g. the history save itself) fails
           the run with an "Unexpected Error" detail
"""
import logging
import time
from typing import Iterator, List, Optional

from jirasync.config import SyncConfig
from jirasync.jira.client import SearchPage
from jirasync.models.query import JqlQuery
from jirasync.models.sync import SyncType
from jirasync.sync.batch import BatchProcessor
from jirasync.sync.history import SyncHistory
from jirasync.sync.pagination import PaginatedFetcher

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Drives one sync run across all active queries."""

    def __init__(
        self,
        queries,
        history_repository,
        fetcher: PaginatedFetcher,
        batch_processor: BatchProcessor,
        config: SyncConfig,
        client=None,
    ):
        """
        Args:
            queries: Object with ``list_active_queries_by_priority()``.
            history_repository: Object with ``save(SyncHistory) -> SyncHistory``.
            fetcher: PaginatedFetcher yielding SearchPage objects per query.
            batch_processor: BatchProcessor for the issues of each page.
            config: SyncConfig (performance monitoring toggle).
            client: JiraClient, only needed for test_connection().
        """
        self.queries = queries
        self.history_repository = history_repository
        self.fetcher = fetcher
        self.batch_processor = batch_processor
        self.config = config
        self.client = client

    def execute_sync(
        self,
        sync_type: SyncType = SyncType.SCHEDULED,
        triggered_by: Optional[str] = "system",
    ) -> SyncHistory:
        """
        Execute all active queries in priority order.

        Returns:
            The finished SyncHistory. Never raises for sync failures; the
            outcome is in ``sync_status`` and the ordered details.
        """
        logger.info("Jira sync starting (%s, triggered by %s)", sync_type.value, triggered_by)
        history = SyncHistory.start(sync_type, triggered_by)

        try:
            history = self.history_repository.save(history)

            queries = self._load_queries(history)
            for query in queries:
                self._run_query_isolated(query, history)

            # Persist every detail while the run can still be failed
            self.history_repository.save(history)

            status = history.finish()
            if history.has_errors:
                logger.warning(
                    "Jira sync %s finished %s: %d error(s) in %d details",
                    history.id, status.value, history.error_count, len(history.details),
                )
            else:
                logger.info(
                    "Jira sync %s finished %s: %d details",
                    history.id, status.value, len(history.details),
                )
            return self.history_repository.save(history)

        except Exception as exc:
            logger.exception("Unexpected error during Jira sync %s", history.id)
            if history.is_in_progress:
                history.add_error("Unexpected Error", f"Unexpected error: {exc}")
                history.fail(f"Unexpected error: {exc}")
            try:
                self.history_repository.save(history)
            except Exception:
                logger.exception("Could not persist failed sync %s", history.id)
            return history

    def test_connection(self) -> bool:
        """Check the Jira connection. False on any error."""
        if self.client is None:
            logger.warning("No Jira client configured for connection test")
            return False
        try:
            result = self.client.test_connection()
        except Exception as exc:
            logger.warning("Jira connection test raised: %s", exc)
            return False
        logger.info("Jira connection test: %s", "ok" if result else "failed")
        return bool(result)

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _load_queries(self, history: SyncHistory) -> List[JqlQuery]:
        try:
            queries = list(self.queries.list_active_queries_by_priority())
        except Exception as exc:
            logger.exception("Failed to load active JQL queries")
            history.add_error("Fetch Active JQL Queries", f"Failed to load active queries: {exc}")
            return []

        logger.info("Loaded %d active JQL queries", len(queries))
        if not queries:
            history.add_success("Fetch Active JQL Queries", "No active JQL queries found")
        else:
            history.add_success(
                "Fetch Active JQL Queries", f"Found {len(queries)} active JQL queries"
            )
        return queries

    def _run_query_isolated(self, query: JqlQuery, history: SyncHistory) -> None:
        try:
            logger.info("Executing JQL query %s (priority %s)", query.query_name, query.priority)
            self._run_query(query, history)
            history.add_success("Completed JQL Query", f"Success: {query.query_name}")
        except Exception as exc:
            logger.error("JQL query %s failed: %s", query.query_name, exc, exc_info=True)
            history.add_error(
                "Execute JQL Query",
                f"JQL query execution error [{query.query_name}]: {exc}",
            )

    def _run_query(self, query: JqlQuery, history: SyncHistory) -> None:
        started = time.monotonic()

        result = self.batch_processor.process_pages(
            self._recorded_pages(query, history),
            query.template_id,
            history,
            query.query_name,
        )

        if self.config.performance_monitoring_enabled:
            elapsed = time.monotonic() - started
            rate = result.processed / elapsed if elapsed > 0 else 0.0
            logger.info(
                "JQL query %s processed %d issues in %d chunks, %.2fs (%.2f issues/s)",
                query.query_name, result.processed, result.chunks, elapsed, rate,
            )

    def _recorded_pages(self, query: JqlQuery, history: SyncHistory) -> Iterator[SearchPage]:
        """Pages of ``query``, each recorded as an "Execute JQL Query" detail."""
        for page_number, page in enumerate(self.fetcher.fetch_all(query), start=1):
            if page_number == 1 and page.total == 0:
                logger.info("JQL query %s returned no issues", query.query_name)
                history.add_success(
                    "Execute JQL Query",
                    f"No issues found [{query.query_name}]\n{query.jql_expression}",
                )
                return

            history.add_success(
                "Execute JQL Query",
                f"JQL execution succeeded [{query.query_name}]: {len(page.issues)} issues "
                f"(offset {page.start_at}, total {page.total})\n{query.jql_expression}",
            )
            yield page
