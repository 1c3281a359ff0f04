"""
Retry with exponential backoff for the status reporter.

The controller core never retries: a failed cycle is simply re-run on the
next tick. Only network writes to the metrics backend go through here.

Example:
    >>> from wanrate._retry import Retrying
    >>> for attempt in Retrying(max_retries=3, initial_delay=0.5):
    ...     with attempt:
    ...         response = session.post(url, data=line)
    ...         response.raise_for_status()
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass

import requests

from wanrate._utils import sleep_with_jitter

logger = logging.getLogger(__name__)


class RetryableError(Exception):
    """
    Base class for exceptions that should trigger automatic retry.

    Subclasses are retried by `Retrying` without being listed in
    `retry_on_exceptions`.
    """

    pass


class MaxRetriesExceededError(Exception):
    """
    Raised when all retry attempts are exhausted.

    Attributes:
        last_exception: The exception raised by the final attempt.
    """

    def __init__(self, message: str, last_exception: Exception | None = None):
        super().__init__(message)
        self.last_exception = last_exception


@dataclass(frozen=True)
class RetryAttempt:
    """
    Metadata about the current attempt within a retry loop.

    Attributes:
        attempt_number: One-based attempt number (1 = first try).
        max_attempts: Total attempts allowed (max_retries + 1).
    """

    attempt_number: int
    max_attempts: int

    @property
    def is_last_attempt(self) -> bool:
        return self.attempt_number >= self.max_attempts


class Retrying:
    """
    Context manager for retry with exponential backoff.

    Args:
        max_retries: Retries after the first attempt. 0 means a single attempt,
            and the original exception propagates unwrapped.
        initial_delay: Delay before the first retry; doubles on each attempt.
        retry_on_status_codes: HTTP statuses treated as transient. InfluxDB
            answers 429 when throttling writes and 503 while starting up.
        retry_on_exceptions: Exception types that always trigger retry.
        logger_prefix: Prefix for log messages (e.g., "InfluxDbReporter").

    Raises:
        MaxRetriesExceededError: When all retry attempts are exhausted.
    """

    # Upper bound honoured for a server-provided Retry-After, in seconds
    MAX_RETRY_AFTER = 30.0

    def __init__(
        self,
        max_retries: int = 3,
        initial_delay: float = 0.5,
        retry_on_status_codes: tuple[int, ...] = (408, 429, 500, 502, 503, 504),
        retry_on_exceptions: tuple[type[Exception], ...] = (
            requests.Timeout,
            requests.ConnectionError,
        ),
        logger_prefix: str = "",
    ):
        assert max_retries >= 0, f"max_retries must be >= 0, got {max_retries}"
        assert initial_delay > 0, f"initial_delay must be > 0, got {initial_delay}"

        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.retry_on_status_codes = set(retry_on_status_codes)
        self.retry_on_exceptions = retry_on_exceptions
        self.logger_prefix = logger_prefix

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def __iter__(self) -> Iterator[_RetryContext]:
        for attempt_number in range(1, self.max_attempts + 1):
            yield _RetryContext(self, attempt_number)

    def should_retry(self, exception: Exception) -> bool:
        """
        Decide whether `exception` is transient.

        An HTTP error carrying a response is judged by its status code only,
        so a 400 (malformed line protocol) or 401 (bad token) fails fast.
        """
        if isinstance(exception, requests.RequestException):
            response = getattr(exception, "response", None)
            if response is not None:
                return response.status_code in self.retry_on_status_codes

        if isinstance(exception, RetryableError):
            return True

        return isinstance(exception, self.retry_on_exceptions)

    def wait_time(self, attempt_number: int, exception: Exception) -> float:
        """Return the delay before the attempt after `attempt_number`."""
        delay = self.initial_delay * (2 ** (attempt_number - 1))

        response = getattr(exception, "response", None)
        if isinstance(exception, requests.HTTPError) and response is not None and response.status_code == 429:
            retry_after = self._parse_retry_after(response)
            if retry_after is not None:
                return max(retry_after, delay)

        return delay

    def _parse_retry_after(self, response: requests.Response) -> float | None:
        # Only the delta-seconds form; HTTP-dates fall back to backoff
        header = response.headers.get("Retry-After")
        if not header:
            return None
        try:
            seconds = float(header)
        except (TypeError, ValueError):
            return None
        if seconds > self.MAX_RETRY_AFTER:
            logger.warning(
                f"{self._prefix}Retry-After header ({seconds}s) exceeds {self.MAX_RETRY_AFTER}s. "
                f"Using exponential backoff instead."
            )
            return None
        return seconds

    @property
    def _prefix(self) -> str:
        return f"{self.logger_prefix} | " if self.logger_prefix else ""

    def _handle_retry(self, attempt_number: int, exception: Exception) -> None:
        sleep_time = self.wait_time(attempt_number, exception)
        logger.warning(
            f"{self._prefix}Attempt {attempt_number}/{self.max_attempts} failed: {exception}. "
            f"Retrying in {sleep_time:.1f}s..."
        )
        sleep_with_jitter(sleep_time)

    def _handle_exhausted(self, exception: Exception) -> None:
        logger.error(f"{self._prefix}Max retries ({self.max_retries}) exceeded. Last error: {exception}")
        raise MaxRetriesExceededError(
            message=f"Max retries exceeded. Last error: {exception}",
            last_exception=exception,
        ) from exception


class _RetryContext:
    """
    Context for a single attempt (internal).

    On success exits normally; on a transient failure suppresses the
    exception so the loop continues; on a permanent failure re-raises;
    on the last transient failure raises MaxRetriesExceededError.
    """

    def __init__(self, retrying: Retrying, attempt_number: int):
        self._retrying = retrying
        self.attempt_number = attempt_number

    def __enter__(self) -> RetryAttempt:
        return RetryAttempt(
            attempt_number=self.attempt_number,
            max_attempts=self._retrying.max_attempts,
        )

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> bool:
        if exc_val is None:
            return False

        # KeyboardInterrupt and friends are never retried
        if not isinstance(exc_val, Exception):
            return False

        if not self._retrying.should_retry(exc_val):
            return False

        if self._retrying.max_retries == 0:
            return False

        if self.attempt_number >= self._retrying.max_attempts:
            self._retrying._handle_exhausted(exc_val)
            return False  # never reached

        self._retrying._handle_retry(self.attempt_number, exc_val)
        return True
