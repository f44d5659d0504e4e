"""Exceptions raised by the Jira REST client."""
from typing import Optional


class JiraError(Exception):
    """Base exception for Jira API failures."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class JiraNotConfiguredError(JiraError):
    """Raised when the base URL or API token is missing."""


class JiraAuthenticationError(JiraError):
    """401 Unauthorized or 403 Forbidden. Never retried."""

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401

    @property
    def is_forbidden(self) -> bool:
        return self.status_code == 403


class JiraRateLimitError(JiraError):
    """429 Too Many Requests, carrying the server's Retry-After hint."""

    def __init__(self, message: str, retry_after_seconds: float):
        super().__init__(message, status_code=429)
        self.retry_after_seconds = retry_after_seconds


class JiraServerError(JiraError):
    """5xx response; the server may recover."""


class JiraConnectionError(JiraError):
    """Connection refused, DNS failure or timeout before a response arrived."""


class JiraApiError(JiraError):
    """Any other non-2xx response, or a body that could not be parsed."""
