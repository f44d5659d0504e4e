"""
Failure classification for remote calls.

Every exception raised while fetching a page is mapped to exactly one of four
tagged variants. The retry engine only ever looks at these variants, never at
exception types, so the decision table lives in one place:

    AuthFailure   401/403                         no retry, escalate now
    RateLimited   429 + Retry-After               wait the hint, retry
    Transient     timeout, connection, 5xx        exponential backoff, retry
    NonRetryable  everything else                 give up, no escalation

``attempt()`` runs an operation and returns either ``Fetched`` or one of the
failure variants, so callers branch on a closed set of results.
"""
import socket
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar, Union

import requests

from jirasync.jira.errors import (
    JiraAuthenticationError,
    JiraConnectionError,
    JiraError,
    JiraRateLimitError,
    JiraServerError,
)

T = TypeVar("T")

DEFAULT_RETRY_AFTER_SECONDS = 60.0

_TRANSIENT_TYPES = (
    JiraConnectionError,
    JiraServerError,
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    ConnectionError,
    TimeoutError,
    socket.timeout,
)


@dataclass(frozen=True)
class AuthFailure:
    status_code: int
    message: str
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class RateLimited:
    retry_after_seconds: float
    message: str
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class Transient:
    message: str
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class NonRetryable:
    message: str
    error: Optional[BaseException] = None


Failure = Union[AuthFailure, RateLimited, Transient, NonRetryable]


@dataclass(frozen=True)
class Fetched(Generic[T]):
    value: T


def classify(error: BaseException, default_retry_after: float = DEFAULT_RETRY_AFTER_SECONDS) -> Failure:
    """Map an exception to its failure class. Pure and total."""
    message = str(error) or error.__class__.__name__
    status = getattr(error, "status_code", None)

    if isinstance(error, JiraAuthenticationError) or status in (401, 403):
        return AuthFailure(status_code=status or 401, message=message, error=error)

    if isinstance(error, JiraRateLimitError) or status == 429:
        retry_after = getattr(error, "retry_after_seconds", None)
        if retry_after is None or retry_after < 0:
            retry_after = default_retry_after
        return RateLimited(retry_after_seconds=float(retry_after), message=message, error=error)

    if isinstance(error, _TRANSIENT_TYPES):
        return Transient(message=message, error=error)

    if isinstance(error, JiraError) and status is not None and status >= 500:
        return Transient(message=message, error=error)

    return NonRetryable(message=message, error=error)


def attempt(
    operation: Callable[[], T],
    default_retry_after: float = DEFAULT_RETRY_AFTER_SECONDS,
) -> Union[Fetched, Failure]:
    """Run ``operation`` once, returning its value or its classified failure."""
    try:
        return Fetched(operation())
    except Exception as exc:
        return classify(exc, default_retry_after)


def is_retryable(outcome: Any) -> bool:
    return isinstance(outcome, (RateLimited, Transient))
