"""
Synchronous Jira REST client built on requests.

Only the calls the sync engine needs are implemented: paginated JQL search
and a connection test. HTTP failures are translated into the exceptions in
jirasync.jira.errors so callers never have to look at raw responses.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from jirasync.jira.errors import (
    JiraApiError,
    JiraAuthenticationError,
    JiraConnectionError,
    JiraNotConfiguredError,
    JiraRateLimitError,
    JiraServerError,
)

logger = logging.getLogger(__name__)

API_PREFIX = "/rest/api/2"
SEARCH_EXPAND = "renderedFields,names,schema,operations,editmeta,changelog"
SEARCH_FIELDS = "*all,-comment,-attachment,-worklog"
DEFAULT_RETRY_AFTER_SECONDS = 60.0


@dataclass
class SearchPage:
    """One page of a JQL search response."""

    issues: List[Dict[str, Any]]
    total: int
    start_at: int
    max_results: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SearchPage":
        issues = data.get("issues") or []
        return cls(
            issues=list(issues),
            total=int(data.get("total", len(issues))),
            start_at=int(data.get("startAt", 0)),
            max_results=int(data.get("maxResults", len(issues))),
        )


class JiraClient:
    """Thin wrapper over a requests.Session authenticated with a bearer token."""

    def __init__(
        self,
        base_url: str,
        api_token: str,
        timeout: float = 30.0,
        default_retry_after: float = DEFAULT_RETRY_AFTER_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            base_url: Jira instance URL, e.g. https://company.atlassian.net
            api_token: API token sent as a bearer token.
            timeout: Per-request timeout in seconds.
            default_retry_after: Wait reported for a 429 without a usable header.
            session: requests.Session to use (a MagicMock in tests).
        """
        self.base_url = (base_url or "").rstrip("/")
        self.api_token = api_token
        self.timeout = timeout
        self.default_retry_after = default_retry_after
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Accept": "application/json",
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.api_token}",
            }
        )
        if not self.is_configured:
            logger.warning(
                "Jira base URL or API token not set; set JIRA_BASE_URL and "
                "JIRA_API_TOKEN to enable sync."
            )

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.api_token)

    # ─── Public API ───────────────────────────────────────────────────────────

    def search(self, jql: str, max_results: int = 50, start_at: int = 0) -> SearchPage:
        """
        Execute one page of a JQL search.

        Args:
            jql: JQL expression.
            max_results: Page size requested from the server.
            start_at: Offset of the first issue to return.

        Returns:
            SearchPage with the issues and the server-reported total.

        Raises:
            ValueError: on an empty expression or non-positive page size.
            JiraError subclasses: on any transport or HTTP failure.
        """
        if not jql or not jql.strip():
            raise ValueError("JQL query is required")
        if max_results <= 0:
            raise ValueError("max_results must be greater than 0")
        if start_at < 0:
            raise ValueError("start_at must not be negative")

        logger.info("Jira search: jql=%r startAt=%d maxResults=%d", jql, start_at, max_results)
        data = self._get(
            "search",
            params={
                "jql": jql,
                "maxResults": max_results,
                "startAt": start_at,
                "expand": SEARCH_EXPAND,
                "fields": SEARCH_FIELDS,
            },
        )
        page = SearchPage.from_dict(data)
        logger.info(
            "Jira search returned %d of %d issues (startAt=%d)",
            len(page.issues),
            page.total,
            page.start_at,
        )
        return page

    def test_connection(self) -> bool:
        """Return True if the server info endpoint answers with 2xx."""
        try:
            self._get("serverInfo")
            return True
        except Exception as exc:
            logger.warning("Jira connection test failed: %s", exc)
            return False

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.is_configured:
            raise JiraNotConfiguredError(
                "Jira API token is not configured; Jira integration is unavailable."
            )

        url = f"{self.base_url}{API_PREFIX}/{endpoint}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.exceptions.Timeout as exc:
            raise JiraConnectionError(f"Request timed out: {exc}") from exc
        except requests.exceptions.ConnectionError as exc:
            raise JiraConnectionError(f"Connection failed: {exc}") from exc

        return self._handle_response(response)

    def _handle_response(self, response: requests.Response) -> Dict[str, Any]:
        status = response.status_code
        if 200 <= status < 300:
            if not response.text:
                return {}
            try:
                return response.json()
            except ValueError as exc:
                raise JiraApiError(f"Failed to parse Jira response: {exc}", status) from exc

        body = response.text[:500] if response.text else ""

        if status == 429:
            retry_after = self._retry_after(response)
            logger.warning("Jira rate limit hit: retry after %.0fs", retry_after)
            raise JiraRateLimitError(
                f"Jira API rate limit exceeded - retry after {retry_after:.0f} seconds: {body}",
                retry_after_seconds=retry_after,
            )

        if status in (401, 403):
            logger.error("Jira authentication/authorization error: status=%d", status)
            raise JiraAuthenticationError(
                f"Jira API authentication/authorization error: {status} - {body}",
                status_code=status,
            )

        if status >= 500:
            raise JiraServerError(f"Jira server error: {status} - {body}", status_code=status)

        raise JiraApiError(f"Jira API error: {status} - {body}", status_code=status)

    def _retry_after(self, response: requests.Response) -> float:
        """Seconds from the Retry-After header, or the configured default."""
        header = response.headers.get("Retry-After")
        if header:
            try:
                return max(0.0, float(header.strip()))
            except ValueError:
                logger.warning("Unparseable Retry-After header: %r", header)
        return self.default_retry_after
