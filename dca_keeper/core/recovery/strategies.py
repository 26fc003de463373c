"""
Recovery Strategies

Bounded retry with exponential backoff and a cooperative cancellation token.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .errors import AttemptError, ShutdownError, classify_error_message

T = TypeVar("T")

FailedAttemptCallback = Callable[[Exception, int, int], None]


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 2
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    exponential_base: float = 2.0

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def get_delay(self, attempt: int) -> float:
        """Delay after the given zero-based failed attempt."""
        delay = self.initial_delay_seconds * (self.exponential_base ** attempt)
        return max(min(delay, self.max_delay_seconds), 0.0)


class CancellationToken:
    """Shared shutdown signal observed by retry loops and queue waits."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, seconds: float) -> bool:
        """Sleep unless cancelled first. Returns True when the sleep completed."""
        if self.cancelled:
            return False
        if seconds <= 0:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return True
        return False


class RetryStrategy:
    """
    Retries an async operation while its failures classify as transient.

    Non-transient failures abort immediately. The cancellation token is
    checked before every attempt and interrupts the backoff sleep.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        token: Optional[CancellationToken] = None,
        on_failed_attempt: Optional[FailedAttemptCallback] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or RetryConfig()
        self.token = token
        self.on_failed_attempt = on_failed_attempt
        self.logger = logger or logging.getLogger(__name__)

    def should_retry(self, error: Exception, attempt: int) -> bool:
        if attempt >= self.config.max_attempts - 1:
            return False
        if isinstance(error, ShutdownError):
            return False
        if isinstance(error, AttemptError):
            return error.retryable
        return classify_error_message(str(error)).retryable

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        for attempt in range(self.config.max_attempts):
            if self.token is not None and self.token.cancelled:
                raise ShutdownError()
            try:
                return await operation()
            except Exception as e:
                if self.on_failed_attempt is not None:
                    self.on_failed_attempt(e, attempt + 1, self.config.max_attempts)

                if not self.should_retry(e, attempt):
                    raise

                delay = self.config.get_delay(attempt)
                self.logger.warning(
                    "Attempt %d/%d failed: %s. Retrying in %.1fs",
                    attempt + 1,
                    self.config.max_attempts,
                    e,
                    delay,
                )
                if self.token is not None:
                    if not await self.token.sleep(delay):
                        raise ShutdownError() from e
                elif delay > 0:
                    await asyncio.sleep(delay)

        # Unreachable: the final attempt either returns or raises.
        raise RuntimeError("All retry attempts exhausted")


def error_message(value: Any) -> str:
    if isinstance(value, BaseException):
        return str(value) or value.__class__.__name__
    return str(value)
