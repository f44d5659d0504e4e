"""Offset pagination over the Jira search endpoint.

Each page is fetched through the RetryExecutor on its own, so a failure on
page N never discards pages already yielded and processed.

The loop trusts the ``total`` of the latest response rather than the first
one: if issues are created or closed mid-run the cursor follows the server.
The offset advances by the ``maxResults`` the server reports, never by more
than was requested.
An empty page also ends the loop, which bounds the walk even if the reported
total keeps growing.
"""
import logging
from dataclasses import dataclass
from typing import Iterator, Optional

from jirasync.jira.client import SearchPage
from jirasync.models.query import JqlQuery
from jirasync.sync.retry import RetryExecutor

logger = logging.getLogger(__name__)


@dataclass
class PageCursor:
    """Position within one query's result set. Never persisted."""

    page_size: int
    offset: int = 0
    total: Optional[int] = None

    def advance(self, page: SearchPage) -> None:
        """Move past ``page``, stepping by the page size the server applied.

        Jira may cap maxResults below the requested value and reports the
        value it applied.
        """
        self.total = page.total
        step = min(page.max_results or len(page.issues), self.page_size)
        self.offset += step if step > 0 else self.page_size

    @property
    def exhausted(self) -> bool:
        return self.total is not None and self.offset >= self.total


class PaginatedFetcher:
    """
    Args:
        client: Object with ``search(jql, max_results, start_at) -> SearchPage``.
        retry: RetryExecutor wrapping every page request.
        page_size: maxResults per request.
    """

    def __init__(self, client, retry: RetryExecutor, page_size: int = 50):
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self.client = client
        self.retry = retry
        self.page_size = page_size

    def fetch_all(self, query: JqlQuery) -> Iterator[SearchPage]:
        """
        Lazily yield every page for ``query``. A fresh cursor per call.

        A first page reporting zero matches is yielded (empty) and ends the
        sequence, so callers can record "no issues found".
        """
        cursor = PageCursor(page_size=self.page_size)

        while not cursor.exhausted:
            offset = cursor.offset
            page = self.retry.execute_with_retry(
                lambda: self.client.search(
                    query.jql_expression, max_results=self.page_size, start_at=offset
                ),
                query.query_name,
            )
            cursor.advance(page)
            logger.debug(
                "Query %s: page at offset %d returned %d issues (total %d)",
                query.query_name, offset, len(page.issues), page.total,
            )
            yield page

            if not page.issues:
                break
