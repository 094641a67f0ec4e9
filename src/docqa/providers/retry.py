"""Retry policy shared by remote provider calls."""
from __future__ import annotations

import logging
from typing import Callable, Sequence, TypeVar

from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from docqa.errors import ProviderUnavailable, TransientProviderError
from docqa.telemetry import emit_provider_retry

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_retry(
    func: Callable[[], T],
    *,
    operation: str,
    max_attempts: int,
    backoff_seconds: float,
    backoff_max_seconds: float,
    identifiers: Sequence[str] = (),
) -> T:
    """Run *func*, retrying transient provider failures with exponential backoff.

    ``ProviderRejected`` and any other error propagate on the first attempt.
    Once ``max_attempts`` transient failures accumulate the last one is
    wrapped into :class:`ProviderUnavailable` carrying *identifiers*.
    """

    def _before_sleep(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        if error is not None:
            emit_provider_retry(
                operation=operation,
                attempt=state.attempt_number,
                error=error,
                identifiers=identifiers,
            )

    retrying = Retrying(
        reraise=True,
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=backoff_seconds, max=backoff_max_seconds),
        retry=retry_if_exception_type(TransientProviderError),
        before_sleep=_before_sleep,
    )
    try:
        for attempt in retrying:
            with attempt:
                return func()
    except TransientProviderError as error:
        LOGGER.warning(
            "%s failed after %d attempts: %s", operation, max_attempts, error
        )
        raise ProviderUnavailable(
            f"{operation} failed after {max_attempts} attempts: {error}",
            identifiers=identifiers,
            cause=error,
        ) from error
    raise ProviderUnavailable(f"{operation} did not run", identifiers=identifiers)


__all__ = ["call_with_retry"]
