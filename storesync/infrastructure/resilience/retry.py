"""Service for executing backend calls with automatic retries.

Implements exponential backoff for transient errors (network failures,
unavailability, timeouts). Permission, authentication and validation errors
are terminal: they are raised after the first attempt.
"""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional

from storesync.domain.events.access_events import (
    AttemptFailed, EventListener, RetriesExhausted, RetryScheduled, log_event,
)
from storesync.domain.exceptions import (
    BackendError, RetryExhaustedError, TerminalBackendError, TransientBackendError,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_S = 1.0
DEFAULT_ATTEMPT_TIMEOUT_S = 5.0

# Programming/validation errors raised by the call itself; retrying cannot help
NON_RETRYABLE_EXCEPTIONS = (TerminalBackendError, ValueError, TypeError)

Operation = Callable[[], Awaitable[Any]]


def is_terminal(error: BaseException) -> bool:
    """Classifies an error as terminal (True) or retryable (False)."""
    if isinstance(error, NON_RETRYABLE_EXCEPTIONS):
        return True
    if isinstance(error, BackendError):
        return error.is_terminal
    return False


def as_terminal(error: BaseException) -> TerminalBackendError:
    if isinstance(error, TerminalBackendError):
        return error
    code = getattr(error, "code", "invalid-argument")
    return TerminalBackendError(str(error), code=code)


def as_transient(error: BaseException) -> TransientBackendError:
    if isinstance(error, TransientBackendError):
        return error
    if isinstance(error, asyncio.TimeoutError):
        return TransientBackendError("Backend call timed out", code="deadline-exceeded")
    code = getattr(error, "code", "unavailable")
    return TransientBackendError(f"{type(error).__name__}: {error}", code=code)


class RetryPolicy:
    """Bounded exponential-backoff retry with terminal/retryable classification."""

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY_S,
        attempt_timeout: Optional[float] = DEFAULT_ATTEMPT_TIMEOUT_S,
        jitter: float = 0.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        event_listener: Optional[EventListener] = None,
    ):
        """Initializes the RetryPolicy.

        Args:
            max_retries: Total number of attempts per call.
            base_delay: Delay in seconds before the second attempt; doubles after.
            attempt_timeout: Per-attempt timeout in seconds (None disables it).
            jitter: Extra random fraction (0..jitter) added on top of each delay.
                The delay never drops below the exponential lower bound.
            sleep: Awaitable sleep function (injectable for tests).
            event_listener: Optional receiver of retry lifecycle events.
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1.")
        if base_delay < 0 or jitter < 0:
            raise ValueError("base_delay and jitter must be non-negative.")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.attempt_timeout = attempt_timeout
        self.jitter = jitter
        self._sleep = sleep
        self.event_listener = event_listener
        logger.info(
            f"RetryPolicy initialized: max_retries={max_retries}, base_delay={base_delay}s, "
            f"attempt_timeout={attempt_timeout}s, jitter={jitter}"
        )

    def backoff_delay(self, attempt_index: int, base_delay: Optional[float] = None) -> float:
        """Delay after the failed attempt number `attempt_index` (0-based)."""
        base = self.base_delay if base_delay is None else base_delay
        delay = base * (2 ** attempt_index)
        if self.jitter:
            delay += delay * random.uniform(0, self.jitter)
        return delay

    async def _attempt(self, operation: Operation) -> Any:
        if self.attempt_timeout is None:
            return await operation()
        return await asyncio.wait_for(operation(), timeout=self.attempt_timeout)

    async def execute(
        self,
        operation: Operation,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        name: Optional[str] = None,
    ) -> Any:
        """Runs `operation` until it succeeds, fails terminally or runs out of attempts.

        Args:
            operation: Zero-argument coroutine function performing the backend call.
            max_retries: Overrides the configured attempt count for this call.
            base_delay: Overrides the configured base delay for this call.
            name: Label used in logs and events.

        Returns:
            Whatever `operation` returns.

        Raises:
            TerminalBackendError: On a terminal error (exactly one attempt).
            RetryExhaustedError: When every attempt failed with a retryable error.
        """
        attempts = self.max_retries if max_retries is None else max_retries
        if attempts < 1:
            raise ValueError("max_retries must be at least 1.")
        label = name or getattr(operation, "__name__", "operation")
        last_error: Optional[TransientBackendError] = None

        for attempt in range(attempts):
            try:
                return await self._attempt(operation)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                terminal = is_terminal(e)
                log_event(logger, AttemptFailed(
                    operation=label, attempt_number=attempt + 1, error_type=type(e).__name__,
                    error_message=str(e), retryable=not terminal,
                ), self.event_listener)
                if terminal:
                    logger.error(f"Non-retryable error calling {label} on attempt {attempt + 1}: {e}")
                    error = as_terminal(e)
                    if error is e:
                        raise
                    raise error from e

                last_error = as_transient(e)
                if last_error is not e:
                    last_error.__cause__ = e
                if attempt < attempts - 1:
                    delay = self.backoff_delay(attempt, base_delay)
                    logger.warning(
                        f"Retryable error calling {label} on attempt {attempt + 1}/{attempts}: "
                        f"{type(e).__name__}. Waiting {delay:.2f}s..."
                    )
                    log_event(logger, RetryScheduled(
                        operation=label, attempt_number=attempt + 1, delay_seconds=delay,
                    ), self.event_listener)
                    await self._sleep(delay)

        logger.error(f"Max retries ({attempts}) reached for {label}. Last error: {last_error}")
        log_event(logger, RetriesExhausted(
            operation=label, attempts=attempts, error_type=type(last_error).__name__,
        ), self.event_listener)
        raise RetryExhaustedError(last_error, attempts) from last_error
