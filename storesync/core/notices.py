"""Maps data-access outcomes to what the user should be told."""

import logging
from dataclasses import dataclass

from storesync.domain.exceptions import (
    OfflineQueuedSignal, QueueFullError, RateLimitError, RecordNotFoundError,
    RetryExhaustedError, StoreSyncError, TerminalBackendError,
)

logger = logging.getLogger(__name__)

INFO = "info"
WARNING = "warning"
ERROR = "error"


@dataclass(frozen=True)
class Notice:
    level: str
    message: str
    blocking: bool


def user_notice(exc: BaseException) -> Notice:
    """Returns the user-facing notice for an exception raised by a read or write.

    Args:
        exc: What DataAccessService (or a domain service) raised.

    Returns:
        A Notice. `blocking` is True when the user's action did not take effect
        and will not take effect without them doing something.
    """
    if isinstance(exc, OfflineQueuedSignal):
        return Notice(INFO, "Saved offline. Your changes will sync when the connection is back.", False)
    if isinstance(exc, RateLimitError):
        wait = f" (about {exc.retry_after:.1f}s)" if exc.retry_after > 0 else ""
        return Notice(WARNING, f"Too many requests. Please try again shortly{wait}.", False)
    if isinstance(exc, QueueFullError):
        return Notice(ERROR, "Cannot save: offline storage is full. Reconnect to sync pending changes.", True)
    if isinstance(exc, RecordNotFoundError):
        return Notice(ERROR, "The requested item no longer exists.", True)
    if isinstance(exc, TerminalBackendError):
        return Notice(ERROR, f"The request was rejected ({exc.code}).", True)
    if isinstance(exc, RetryExhaustedError):
        return Notice(WARNING, "The server could not be reached. Please try again later.", True)
    if isinstance(exc, StoreSyncError):
        return Notice(ERROR, str(exc), True)
    logger.error(f"Unexpected error surfaced to the user: {exc}", exc_info=exc)
    return Notice(ERROR, "An unexpected error occurred.", True)
