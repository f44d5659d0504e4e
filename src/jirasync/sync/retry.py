"""Retry policy for page fetches, with operator escalation on give-up.

Two pieces, composed by RetryExecutor:
- RetryPolicy: decides whether a classified failure gets another attempt
  and how long to wait before it.
- Escalator (jirasync.notifications): fires the operator alert when an auth
  failure happens or the attempt budget runs out.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, TypeVar

from jirasync.config import SyncConfig
from jirasync.notifications import Escalator
from jirasync.sync.failures import (
    AuthFailure,
    Failure,
    Fetched,
    NonRetryable,
    RateLimited,
    Transient,
    attempt,
    is_retryable,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryAttempt:
    """Bookkeeping for one failed attempt inside a single fetch sequence."""

    number: int
    failure: Failure
    wait_seconds: float = 0.0


class RetryPolicy:
    """Attempt ceiling plus wait calculation per failure class."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 30.0,
        max_delay: float = 120.0,
        multiplier: float = 2.0,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.multiplier = multiplier

    @classmethod
    def from_config(cls, config: SyncConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.backoff_base_delay,
            max_delay=config.backoff_max_delay,
            multiplier=config.backoff_multiplier,
        )

    def should_retry(self, failure: Failure, attempt_number: int) -> bool:
        """True if ``failure`` on attempt ``attempt_number`` (1-based) earns another try."""
        if not is_retryable(failure):
            return False
        return attempt_number < self.max_attempts

    def wait_seconds(self, failure: Failure, attempt_number: int) -> float:
        """Server hint for rate limits, exponential backoff for transient errors."""
        if isinstance(failure, RateLimited):
            return max(0.0, failure.retry_after_seconds)
        if isinstance(failure, Transient):
            delay = self.base_delay * (self.multiplier ** (attempt_number - 1))
            return min(delay, self.max_delay)
        return 0.0


class RetryExecutor:
    """
    Runs one remote operation under a RetryPolicy.

    Args:
        policy: RetryPolicy deciding attempts and waits.
        escalator: Escalator used for auth failures and exhausted retries.
        sleep: Blocking sleep, injected so tests don't wait.
        default_retry_after: Wait for a 429 that carried no usable hint.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        escalator: Escalator,
        sleep: Callable[[float], None] = time.sleep,
        default_retry_after: float = 60.0,
    ):
        self.policy = policy
        self.escalator = escalator
        self.sleep = sleep
        self.default_retry_after = default_retry_after

    def execute_with_retry(self, operation: Callable[[], T], query_name: str) -> T:
        """
        Call ``operation`` until it succeeds or the policy gives up.

        Returns:
            The operation's return value.

        Raises:
            The original exception of the final failed attempt. Auth failures
            are escalated before raising; exhausted rate-limit/transient
            sequences are escalated with the attempt count before raising.
        """
        attempts: List[RetryAttempt] = []
        number = 0

        while True:
            number += 1
            outcome = attempt(operation, self.default_retry_after)

            if isinstance(outcome, Fetched):
                if attempts:
                    logger.info(
                        "Query %s succeeded on attempt %d/%d",
                        query_name, number, self.policy.max_attempts,
                    )
                return outcome.value

            if isinstance(outcome, AuthFailure):
                logger.error(
                    "Authentication failure (status %s) for query %s; not retrying",
                    outcome.status_code, query_name,
                )
                self.escalator.auth_failure(outcome.message, outcome.status_code, query_name)
                raise outcome.error

            if isinstance(outcome, NonRetryable):
                logger.error("Non-retryable error for query %s: %s", query_name, outcome.message)
                raise outcome.error

            record = RetryAttempt(number=number, failure=outcome)
            attempts.append(record)

            if not self.policy.should_retry(outcome, number):
                logger.error(
                    "All %d attempts failed for query %s: %s",
                    number, query_name, outcome.message,
                )
                self.escalator.retry_exhausted(
                    "JQL query execution failed on every attempt",
                    query_name,
                    number,
                    outcome.error,
                )
                raise outcome.error

            record.wait_seconds = self.policy.wait_seconds(outcome, number)
            if isinstance(outcome, RateLimited):
                logger.warning(
                    "Rate limited on query %s: waiting %.1fs (attempt %d/%d)",
                    query_name, record.wait_seconds, number, self.policy.max_attempts,
                )
            else:
                logger.warning(
                    "Transient error on query %s: %s. Retrying in %.1fs (attempt %d/%d)",
                    query_name, outcome.message, record.wait_seconds,
                    number, self.policy.max_attempts,
                )
            if record.wait_seconds > 0:
                self.sleep(record.wait_seconds)