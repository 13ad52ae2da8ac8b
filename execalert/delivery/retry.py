"""Exponential backoff retry helpers.

Two calling conventions are provided:

* :class:`RetryExecutor` runs an operation ``max_retries + 1`` times and always
  returns a :class:`RetryResult`; the caller decides what to do with a failure.
* :func:`retry_with_backoff` retries only errors matching a retryable list and
  re-raises the last error once attempts run out. :func:`make_retryable` wraps a
  coroutine function with it.

Delays are ``asyncio.sleep`` suspension points.
"""

import asyncio
import functools
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, TypeVar

from execalert.core.config import Settings
from execalert.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]

DEFAULT_RETRYABLE_ERRORS = (
    "timeout",
    "ETIMEDOUT",
    "ECONNRESET",
    "ECONNREFUSED",
    "ENOTFOUND",
    "network",
    "NetworkError",
    "TimeoutError",
)


@dataclass(frozen=True)
class RetryConfig:
    """Retry budget and backoff curve for one call site."""

    max_retries: int = 3
    initial_delay_ms: int = 1000
    max_delay_ms: int = 16000
    backoff_multiplier: float = 2.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryConfig":
        return cls(
            max_retries=settings.retry_max_retries,
            initial_delay_ms=settings.retry_initial_delay_ms,
            max_delay_ms=settings.retry_max_delay_ms,
            backoff_multiplier=settings.retry_backoff_multiplier,
        )


@dataclass
class RetryResult(Generic[T]):
    """Terminal outcome of one retried operation."""

    success: bool
    attempt_count: int
    result: T | None = None
    error: BaseException | None = None


def calculate_backoff_delay(attempt: int, config: RetryConfig) -> float:
    """Delay in ms after the zero-based ``attempt``, capped at ``max_delay_ms``."""
    delay = config.initial_delay_ms * (config.backoff_multiplier ** attempt)
    return min(delay, config.max_delay_ms)


async def _sleep_ms(delay_ms: float) -> None:
    await asyncio.sleep(delay_ms / 1000)


class RetryExecutor:
    """Runs async operations with exponential backoff."""

    def __init__(self, sleep: Sleep = _sleep_ms):
        """Initialize executor.

        Args:
            sleep: Coroutine function awaited with the delay in milliseconds
        """
        self._sleep = sleep

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        config: RetryConfig,
    ) -> RetryResult[T]:
        """Run ``operation`` until it succeeds or the retry budget is spent.

        Args:
            operation: Zero-argument coroutine function
            config: Retry configuration

        Returns:
            Result with the value or the last error, and the number of attempts
        """
        last_error: BaseException | None = None
        attempt_count = 0

        for attempt in range(config.max_retries + 1):
            attempt_count = attempt + 1
            try:
                result = await operation()
                return RetryResult(success=True, attempt_count=attempt_count, result=result)
            except Exception as e:
                last_error = e

                if attempt == config.max_retries:
                    break

                delay = calculate_backoff_delay(attempt, config)
                logger.warning(
                    "Retry attempt failed",
                    attempt=attempt_count,
                    max_retries=config.max_retries,
                    delay_ms=delay,
                    error=str(e),
                )
                await self._sleep(delay)

        logger.error(
            "All retry attempts failed",
            attempts=attempt_count,
            error=str(last_error),
        )
        return RetryResult(success=False, attempt_count=attempt_count, error=last_error)


@dataclass(frozen=True)
class RetryOptions:
    """Options for :func:`retry_with_backoff`."""

    max_attempts: int = 3
    initial_delay_ms: int = 1000
    max_delay_ms: int = 8000
    backoff_multiplier: float = 2.0
    retryable_errors: tuple[str, ...] = field(default=DEFAULT_RETRYABLE_ERRORS)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryOptions":
        return cls(
            max_attempts=settings.retry_max_retries + 1,
            initial_delay_ms=settings.retry_initial_delay_ms,
            max_delay_ms=settings.retry_max_delay_ms,
            backoff_multiplier=settings.retry_backoff_multiplier,
            retryable_errors=tuple(settings.retryable_errors),
        )

    def delay_before(self, attempt: int) -> float:
        """Delay in ms after the one-based ``attempt``."""
        delay = self.initial_delay_ms * (self.backoff_multiplier ** (attempt - 1))
        return min(delay, self.max_delay_ms)


def is_retryable_error(error: BaseException, retryable_errors: tuple[str, ...] | list[str]) -> bool:
    """Match error message or class name against the retryable fragments."""
    message = str(error).lower()
    name = type(error).__name__.lower()
    return any(
        fragment.lower() in message or fragment.lower() in name
        for fragment in retryable_errors
    )


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    options: RetryOptions | None = None,
    sleep: Sleep = _sleep_ms,
) -> T:
    """Call ``fn`` with backoff, retrying only retryable errors.

    Raises:
        Exception: The first non-retryable error, or the last error once
            ``max_attempts`` is exhausted
    """
    opts = options or RetryOptions()
    last_error: Exception | None = None

    for attempt in range(1, opts.max_attempts + 1):
        try:
            result = await fn()
            if attempt > 1:
                logger.info("Succeeded after retry", attempt=attempt)
            return result
        except Exception as e:
            last_error = e
            logger.warning("Attempt failed", attempt=attempt, max_attempts=opts.max_attempts, error=str(e))

            if not is_retryable_error(e, opts.retryable_errors):
                logger.info("Error is not retryable", error_type=type(e).__name__)
                raise

            if attempt < opts.max_attempts:
                delay = opts.delay_before(attempt)
                logger.debug("Waiting before retry", delay_ms=delay)
                await sleep(delay)

    logger.error("All attempts failed", max_attempts=opts.max_attempts)
    if last_error is None:
        raise RuntimeError("All retry attempts failed")
    raise last_error


async def retry_with_backoff_safe(
    fn: Callable[[], Awaitable[T]],
    options: RetryOptions | None = None,
    sleep: Sleep = _sleep_ms,
) -> RetryResult[T]:
    """Like :func:`retry_with_backoff` but returns a result instead of raising."""
    opts = options or RetryOptions()
    attempts = 0

    async def counted() -> T:
        nonlocal attempts
        attempts += 1
        return await fn()

    try:
        result = await retry_with_backoff(counted, opts, sleep)
    except Exception as e:
        return RetryResult(success=False, attempt_count=attempts, error=e)
    return RetryResult(success=True, attempt_count=attempts, result=result)


def make_retryable(
    fn: Callable[..., Awaitable[T]],
    options: RetryOptions | None = None,
) -> Callable[..., Awaitable[T]]:
    """Wrap a coroutine function so every call goes through :func:`retry_with_backoff`."""

    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        return await retry_with_backoff(lambda: fn(*args, **kwargs), options)

    return wrapper
