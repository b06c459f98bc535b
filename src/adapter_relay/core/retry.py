"""Retry policy: exponential backoff with a ceiling."""

import asyncio
from typing import Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from adapter_relay.config import RetryConfig
from adapter_relay.exceptions import AdapterRequestError
from adapter_relay.utils import get_logger

logger = get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


def compute_delay(attempt: int, config: RetryConfig) -> float:
    """Backoff delay after a failed attempt.

    Args:
        attempt: 1-indexed number of the attempt that just failed
        config: Retry parameters

    Returns:
        Delay in seconds, capped at ``max_delay``
    """
    delay = config.base_delay * config.backoff_multiplier ** (attempt - 1)
    return min(delay, config.max_delay)


def is_retryable(error: BaseException) -> bool:
    """Classify an attempt failure.

    4xx answers and malformed bodies are permanent; transport errors,
    timeouts and 5xx answers are transient.
    """
    return isinstance(error, AdapterRequestError) and error.retryable


def build_retrying(
    config: RetryConfig,
    adapter_id: str,
    sleep: SleepFunc = asyncio.sleep,
) -> AsyncRetrying:
    """Build the tenacity controller for one logical call.

    Args:
        config: Retry parameters
        adapter_id: Adapter being called (for logging)
        sleep: Async sleep used between attempts

    Returns:
        Retry controller that re-raises the last error on exhaustion
    """

    def wait(retry_state: RetryCallState) -> float:
        return compute_delay(retry_state.attempt_number, config)

    def log_retry(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "adapter.retry",
            adapter_id=adapter_id,
            attempt=retry_state.attempt_number,
            max_attempts=config.max_attempts,
            delay=retry_state.next_action.sleep if retry_state.next_action else None,
            error=str(error),
        )

    return AsyncRetrying(
        sleep=sleep,
        stop=stop_after_attempt(config.max_attempts),
        wait=wait,
        retry=retry_if_exception(is_retryable),
        before_sleep=log_retry,
        reraise=True,
    )
