"""
Retry logic with pluggable backoff for handling transient failures.

Wraps any fallible operation (sync or async) with bounded attempts, a
backoff strategy, optional jitter, and per-error retry decisions. Raising
an ``AbortRetry`` from the operation bypasses all of it.
"""

import asyncio
import functools
import inspect
import random
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, NamedTuple, Optional, TypeVar, Union

T = TypeVar("T")

BackoffFunction = Callable[[float, int, float], float]


class RetryError(Exception):
    """Raised when the attempt loop ends without a result or an error."""
    pass


class AbortRetry(Exception):
    """
    Non-retryable failure.

    Raised from inside a retried operation to unwind immediately: no retry
    condition is consulted, no hook runs and no delay is awaited.
    """
    pass


class RetryDecision(NamedTuple):
    """Result of a retry condition. ``delay`` overrides the backoff when set."""

    retry: bool
    delay: Optional[float] = None


# Backoff strategies


def linear_backoff(initial_delay: float, attempt: int, max_delay: float) -> float:
    return min(initial_delay * attempt, max_delay)


def exponential_backoff(initial_delay: float, attempt: int, max_delay: float) -> float:
    # attempt <= 0 is allowed and yields a fractional multiplier
    return min(initial_delay * 2 ** (attempt - 1), max_delay)


def fixed_backoff(
    initial_delay: float,
    attempt: Optional[int] = None,
    max_delay: Optional[float] = None,
) -> float:
    return initial_delay


def with_jitter(backoff: BackoffFunction, factor: float) -> BackoffFunction:
    """
    Add randomness to any backoff strategy.

    Args:
        backoff: Base strategy to wrap
        factor: Maximum relative deviation from the base delay, in [0, 1]

    Returns:
        A strategy whose delay is the base delay scaled by a uniform sample
        from [1 - factor, 1 + factor], clamped to max_delay.
    """
    if not 0 <= factor <= 1:
        raise ValueError(f"Jitter factor must be between 0 and 1, got {factor}")

    def jittered(initial_delay: float, attempt: int, max_delay: float) -> float:
        base_delay = backoff(initial_delay, attempt, max_delay)
        if factor == 0:
            return base_delay
        return min(base_delay * random.uniform(1 - factor, 1 + factor), max_delay)

    return jittered


# Policy


def always_retry(exception: BaseException) -> RetryDecision:
    return RetryDecision(retry=True)


def _noop(*args: Any) -> None:
    return None


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry configuration for a single call.

    Attributes:
        max_attempts: Total attempts including the first one
        initial_delay: Base delay in seconds handed to the backoff strategy
        max_delay: Upper bound for any computed delay, in seconds
        backoff: Strategy(initial_delay, attempt, max_delay) -> delay
        retry_condition: Callable(exception) -> RetryDecision
        on_retry: Callback(exception, attempt, delay), may be a coroutine
        on_failure: Callback(exception, attempt), called once when giving up
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 5.0
    backoff: BackoffFunction = exponential_backoff
    retry_condition: Callable[[BaseException], RetryDecision] = always_retry
    on_retry: Callable[[BaseException, int, float], Union[None, Awaitable[None]]] = _noop
    on_failure: Callable[[BaseException, int], None] = _noop

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("Retry delays must be non-negative")

    def merge(self, **overrides) -> "RetryPolicy":
        """Return a copy with the given fields replaced."""
        return replace(self, **overrides)


DEFAULT_RETRY_POLICY = RetryPolicy()


async def with_retry(
    operation: Callable[[], Union[T, Awaitable[T]]],
    policy: Optional[RetryPolicy] = None,
    **overrides,
) -> T:
    """
    Run an operation, retrying failures according to a policy.

    Args:
        operation: Zero-argument callable; may return a value or an awaitable
        policy: Base policy (default: DEFAULT_RETRY_POLICY)
        **overrides: RetryPolicy fields to replace for this call only

    Returns:
        The operation's result

    Raises:
        AbortRetry: Immediately, if the operation raised one
        Exception: The operation's last error once retries are exhausted or
            the retry condition declines

    Example:
        html = await with_retry(lambda: fetch(url), max_attempts=6, initial_delay=2.0)
    """
    policy = policy or DEFAULT_RETRY_POLICY
    if overrides:
        policy = policy.merge(**overrides)

    attempt = 1
    while attempt <= policy.max_attempts:
        try:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
            return result
        except AbortRetry:
            raise
        except Exception as e:
            decision = policy.retry_condition(e)
            if not decision.retry or attempt == policy.max_attempts:
                policy.on_failure(e, attempt)
                raise

            if decision.delay is not None:
                delay = decision.delay
            else:
                delay = policy.backoff(policy.initial_delay, attempt, policy.max_delay)

            hook_result = policy.on_retry(e, attempt, delay)
            if inspect.isawaitable(hook_result):
                await hook_result

            await asyncio.sleep(delay)
            attempt += 1

    raise RetryError(f"Retry loop exited after {attempt - 1} attempts without a result")


def retrying(policy: Optional[RetryPolicy] = None, **overrides):
    """
    Decorator form of with_retry for coroutine functions.

    Example:
        @retrying(max_attempts=2, retry_condition=only_malformed)
        async def extract(fields):
            ...
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            return await with_retry(lambda: func(*args, **kwargs), policy, **overrides)

        return wrapper
    return decorator


def is_transient_error(exception: Exception) -> bool:
    """
    Determine if an exception is likely transient and should be retried.

    Args:
        exception: Exception to check

    Returns:
        True if error is likely transient (timeout, connection, 5xx)
    """
    error_str = str(exception).lower()

    # Network-related errors
    transient_keywords = [
        'timeout',
        'timed out',
        'connection',
        'temporary failure',
        'service unavailable',
        'too many requests',
        '503',
        '502',
        '500',
        '429',  # Rate limit
        'connection reset',
    ]

    return any(keyword in error_str for keyword in transient_keywords)


def should_retry_http_status(status_code: int) -> bool:
    """
    Check if HTTP status code indicates a retryable error.

    Args:
        status_code: HTTP status code

    Returns:
        True if should retry
    """
    # Retry on server errors and rate limiting
    retryable_codes = {
        408,  # Request Timeout
        429,  # Too Many Requests
        500,  # Internal Server Error
        502,  # Bad Gateway
        503,  # Service Unavailable
        504,  # Gateway Timeout
    }

    return status_code in retryable_codes
