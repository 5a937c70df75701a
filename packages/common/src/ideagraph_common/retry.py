"""Retry and backoff patterns using tenacity.

Used around network calls whose failures are transient:
- LLM backends (Ollama HTTP API)
- The remote usage ledger

Pipeline stages themselves are never retried here; a failing stage ends
the extraction session and the caller decides whether to start a new one.
"""

from typing import Callable, Type

from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ideagraph_common.logging_config import get_logger

logger = get_logger(__name__)


def _log_before_sleep(retry_state: RetryCallState) -> None:
    """Log each retry attempt with the exception that triggered it."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "retrying_call",
        function=getattr(retry_state.fn, "__qualname__", str(retry_state.fn)),
        attempt=retry_state.attempt_number,
        error=str(exc) if exc else None,
    )


def retry_on_exception(
    exception_types: tuple[Type[Exception], ...],
    max_attempts: int = 3,
    min_wait_seconds: float = 1.0,
    max_wait_seconds: float = 10.0,
) -> Callable:
    """Decorator for retrying sync or async callables on specific exceptions.

    Uses exponential backoff: wait = min(max_wait, min_wait * 2^(attempt-1))

    Args:
        exception_types: Tuple of exception types to retry on
        max_attempts: Maximum number of attempts (default: 3)
        min_wait_seconds: Minimum wait time between retries (default: 1.0s)
        max_wait_seconds: Maximum wait time between retries (default: 10.0s)

    Returns:
        Decorator function

    Example:
        >>> @retry_on_exception((httpx.TransportError,), max_attempts=5)
        ... async def push_record(payload: dict) -> dict:
        ...     response = await client.post("/api/usage/track", json=payload)
        ...     return response.json()
    """
    return retry(
        retry=retry_if_exception_type(exception_types),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(
            multiplier=min_wait_seconds,
            min=min_wait_seconds,
            max=max_wait_seconds,
        ),
        before_sleep=_log_before_sleep,
        reraise=True,
    )
