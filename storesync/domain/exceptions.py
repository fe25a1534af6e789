"""Error taxonomy for the data-access layer.

Every failure a caller can observe is one of these classes, so the UI layer
can tell "try again shortly" apart from "cannot save, storage full" without
parsing messages. `OfflineQueuedSignal` is intentionally outside the
`StoreSyncError` hierarchy: it reports a deferred success, not a failure.
"""

import time
from typing import Optional

# Backend error codes that retrying cannot fix.
TERMINAL_ERROR_CODES = frozenset({
    "permission-denied",
    "unauthenticated",
    "invalid-argument",
    "malformed-request",
    "not-found",
})


class StoreSyncError(Exception):
    """Base class carrying the context every error is reported with."""

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        cache_key: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.cache_key = cache_key
        self.timestamp = time.time()

    def add_context(self, operation: Optional[str] = None, cache_key: Optional[str] = None) -> "StoreSyncError":
        """Fills in context that was not known where the error was raised."""
        if operation and not self.operation:
            self.operation = operation
        if cache_key and not self.cache_key:
            self.cache_key = cache_key
        return self

    def __str__(self) -> str:
        context = []
        if self.operation:
            context.append(f"operation={self.operation}")
        if self.cache_key:
            context.append(f"key={self.cache_key}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class BackendError(StoreSyncError):
    """Raised by backend adapters; `code` drives retry classification."""

    def __init__(self, message: str, code: str = "unknown", **kwargs):
        super().__init__(message, **kwargs)
        self.code = code

    @property
    def is_terminal(self) -> bool:
        return self.code in TERMINAL_ERROR_CODES


class TerminalBackendError(BackendError):
    """Permission, authentication or validation failure. Never retried."""


class RecordNotFoundError(TerminalBackendError):
    """A single-record lookup found nothing."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("code", "not-found")
        super().__init__(message, **kwargs)


class TransientBackendError(BackendError):
    """Network, availability or timeout failure. Retried by RetryPolicy."""


class RetryExhaustedError(TransientBackendError):
    """Raised once every retry attempt has failed with a transient error."""

    def __init__(self, last_error: BaseException, attempts: int, **kwargs):
        code = getattr(last_error, "code", "unknown")
        super().__init__(
            f"Max retries ({attempts}) exceeded. Last error: {last_error}",
            code=code,
            **kwargs,
        )
        self.last_error = last_error
        self.attempts = attempts


class RateLimitError(StoreSyncError):
    """Admission denied by the rate limiter; the caller must back off."""

    def __init__(self, message: str = "Rate limit exceeded. Please try again later.", retry_after: float = 0.0, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class QueueFullError(StoreSyncError):
    """The offline queue is at capacity; the write was rejected."""

    def __init__(self, capacity: int, **kwargs):
        super().__init__(f"Offline queue is full ({capacity} operations); write rejected.", **kwargs)
        self.capacity = capacity


class OfflineQueuedSignal(Exception):
    """The write was accepted into the offline queue and will sync later."""

    def __init__(self, operation_id: int, description: str = ""):
        message = f"Write queued for later sync (queue id {operation_id})"
        if description:
            message += f": {description}"
        super().__init__(message)
        self.operation_id = operation_id
        self.description = description
        self.timestamp = time.time()
