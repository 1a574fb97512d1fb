"""Retry utilities for object-store calls.

The engine itself never retries: a failed object waits for the next
poll cycle. Retries for transient remote errors are layered on here,
around individual client calls.

Retries are driven by tenacity.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Tuple, Type

import tenacity
from tenacity.wait import wait_base

logger = logging.getLogger(__name__)

__all__ = ["RetryConfig", "retry_operation"]


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        exponential: bool = True,
        jitter: bool = True,
        max_backoff_seconds: float = 10.0,
    ):
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.exponential = exponential
        self.jitter = jitter
        self.max_backoff_seconds = max_backoff_seconds

    @classmethod
    def none(cls) -> "RetryConfig":
        """No retry - fail immediately."""
        return cls(max_attempts=1)

    @classmethod
    def default(cls) -> "RetryConfig":
        """Default retry: 3 attempts with exponential backoff."""
        return cls()

    def wait_strategy(self) -> wait_base:
        wait: wait_base
        if self.exponential:
            wait = tenacity.wait_exponential(
                multiplier=self.backoff_seconds,
                min=self.backoff_seconds,
                max=self.max_backoff_seconds,
            )
        else:
            wait = tenacity.wait_fixed(self.backoff_seconds)

        if self.jitter:
            wait = wait + tenacity.wait_random(0, self.backoff_seconds * 0.5)
        return wait

    def __repr__(self) -> str:
        return (
            f"RetryConfig(max_attempts={self.max_attempts}, "
            f"backoff_seconds={self.backoff_seconds})"
        )


def _retry_condition(
    retry_exceptions: Optional[Tuple[Type[BaseException], ...]],
    should_retry: Optional[Callable[[BaseException], bool]],
) -> tenacity.retry_base:
    exception_types = retry_exceptions or (Exception,)

    def predicate(exc: BaseException) -> bool:
        if not isinstance(exc, exception_types):
            return False
        return should_retry(exc) if should_retry else True

    return tenacity.retry_if_exception(predicate)


def retry_operation(
    operation: Callable[[], Any],
    config: RetryConfig,
    operation_name: str = "operation",
    retry_exceptions: Optional[Tuple[Type[BaseException], ...]] = None,
    should_retry: Optional[Callable[[BaseException], bool]] = None,
) -> Any:
    """Execute an operation with retry logic.

    Args:
        operation: Callable to execute
        config: Retry configuration
        operation_name: Name for logging
        retry_exceptions: Only retry on these exceptions (default: all)
        should_retry: Extra predicate; returning False fails immediately

    Returns:
        Result of the operation

    Example:
        body = retry_operation(
            lambda: client.get_object(Bucket="logs", Key=key),
            RetryConfig.default(),
            "get_object",
        )
    """

    def before_sleep_handler(retry_state: tenacity.RetryCallState) -> None:
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "%s attempt %d/%d failed: %s. Retrying in %.1fs...",
            operation_name,
            retry_state.attempt_number,
            config.max_attempts,
            exception,
            retry_state.next_action.sleep if retry_state.next_action else 0,
        )

    retryer = tenacity.Retrying(
        stop=tenacity.stop_after_attempt(config.max_attempts),
        wait=config.wait_strategy(),
        retry=_retry_condition(retry_exceptions, should_retry),
        before_sleep=before_sleep_handler,
        reraise=True,
    )

    return retryer(operation)
