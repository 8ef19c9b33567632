# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Bounded exponential-backoff retry for transient failures.

Datastore writes and identity-service calls go through a RetryPolicy. Only
errors classified as transient (timeouts, dropped connections, pool
exhaustion) are retried; anything else fails on the first attempt so that
permanent problems such as constraint violations surface immediately.

The delay after failed attempt n (1-based) is min(2**n * base, max), so with
the defaults the waits are 1s and 2s before the second and third attempts.

Example:
    >>> policy = RetryPolicy(max_attempts=3, base_delay_ms=500)
    >>> tenant = await policy.run(lambda: store.insert(draft), "create tenant")
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

import httpx
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

if TYPE_CHECKING:
    from src.core.config.settings import RetrySettings

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]


def is_transient(error: BaseException) -> bool:
    """Decide whether an error is worth another attempt.

    Args:
        error: The exception raised by the operation.

    Returns:
        True for timeouts, connection failures and invalidated database
        connections. False for everything else.
    """
    if isinstance(error, (TimeoutError, ConnectionError)):
        return True
    if isinstance(error, (OperationalError, InterfaceError, PoolTimeoutError)):
        return True
    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return True
    if isinstance(error, httpx.TransportError):
        return True
    return False


class RetryPolicy:
    """Retries an async operation with capped exponential backoff."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay_ms: int = 500,
        max_delay_ms: int = 10_000,
        sleep: SleepFunc | None = None,
    ) -> None:
        """Configure retry behavior.

        Args:
            max_attempts: Total attempts including the first one.
            base_delay_ms: Base delay in milliseconds.
            max_delay_ms: Cap on a single delay in milliseconds.
            sleep: Awaitable sleep used between attempts (overridable for tests).

        Raises:
            ValueError: If the limits are out of range.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if base_delay_ms < 0 or max_delay_ms < 0:
            raise ValueError("base_delay_ms and max_delay_ms must be >= 0")
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self._sleep = sleep or asyncio.sleep

    @classmethod
    def from_settings(cls, settings: "RetrySettings", sleep: SleepFunc | None = None) -> "RetryPolicy":
        """Build a policy from RetrySettings."""
        return cls(
            max_attempts=settings.max_attempts,
            base_delay_ms=settings.base_delay_ms,
            max_delay_ms=settings.max_delay_ms,
            sleep=sleep,
        )

    def delay_for_attempt(self, attempt: int) -> float:
        """Return the wait in seconds after the given failed 1-based attempt."""
        if attempt < 1:
            return 0.0
        delay_ms = min((2**attempt) * self.base_delay_ms, self.max_delay_ms)
        return delay_ms / 1000

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str = "operation",
    ) -> T:
        """Run an operation, retrying transient failures.

        Args:
            operation: Zero-argument callable returning a fresh awaitable per
                attempt.
            operation_name: Label used in log messages.

        Returns:
            The operation's result.

        Raises:
            Exception: The last error once attempts are exhausted, or the
                first non-transient error.
        """
        attempt = 1
        while True:
            try:
                return await operation()
            except Exception as e:
                if not is_transient(e):
                    raise
                if attempt >= self.max_attempts:
                    logger.error(
                        "%s failed after %d attempts: %s",
                        operation_name,
                        attempt,
                        e,
                    )
                    raise
                delay = self.delay_for_attempt(attempt)
                logger.warning(
                    "%s attempt %d/%d failed, retrying in %.2fs: %s",
                    operation_name,
                    attempt,
                    self.max_attempts,
                    delay,
                    e,
                )
                await self._sleep(delay)
                attempt += 1


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    operation_name: str = "operation",
    max_attempts: int = 3,
    base_delay_ms: int = 500,
) -> T:
    """Run an operation under a one-off RetryPolicy.

    Args:
        operation: Zero-argument callable returning a fresh awaitable.
        operation_name: Label used in log messages.
        max_attempts: Total attempts including the first one.
        base_delay_ms: Base delay in milliseconds.

    Returns:
        The operation's result.
    """
    policy = RetryPolicy(max_attempts=max_attempts, base_delay_ms=base_delay_ms)
    return await policy.run(operation, operation_name)
