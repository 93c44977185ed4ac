import json
import logging
import time
from collections.abc import Callable
from typing import TypeVar

from qcreport.sources import RecordSource


logger = logging.getLogger(__name__)
T = TypeVar("T")

# Re-reading the same missing or corrupt export gives the same answer.
PERMANENT_FETCH_ERRORS: tuple[type[Exception], ...] = (FileNotFoundError, json.JSONDecodeError)


class RetryExhaustedError(RuntimeError):
    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


def run_with_retries(
    fn: Callable[[], T],
    *,
    max_retries: int,
    backoff_seconds: float,
    on_attempt_failure: Callable[[int, Exception], None] | None = None,
    should_retry: Callable[[Exception], bool] | None = None,
) -> T:
    last_error: Exception | None = None
    attempt = 0

    for attempt in range(1, max_retries + 2):
        try:
            return fn()
        except Exception as exc:
            last_error = exc
            if on_attempt_failure:
                on_attempt_failure(attempt, exc)

            retry_allowed = True if should_retry is None else should_retry(exc)
            if attempt > max_retries or not retry_allowed:
                break
            time.sleep(backoff_seconds * attempt)

    raise RetryExhaustedError(str(last_error), attempts=attempt) from last_error


class RetryingSource:
    """Wraps a record source so transient fetch errors are attempted again."""

    def __init__(self, source: RecordSource, *, max_retries: int, backoff_seconds: float) -> None:
        self.source = source
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds

    def fetch(self, type_id: str) -> list[dict[str, object]]:
        def log_failure(attempt: int, exc: Exception) -> None:
            logger.info("record fetch attempt failed", extra={"table": type_id, "attempt": attempt, "error": str(exc)})

        return run_with_retries(
            lambda: self.source.fetch(type_id),
            max_retries=self.max_retries,
            backoff_seconds=self.backoff_seconds,
            on_attempt_failure=log_failure,
            should_retry=lambda exc: not isinstance(exc, PERMANENT_FETCH_ERRORS),
        )
