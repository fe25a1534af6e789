"""Domain Events related to backend access and resilience.

Examples include events for when a call fails, a retry is scheduled, a write
is deferred to the offline queue, or the connection state flips.
"""

from dataclasses import dataclass, field
import time
from typing import Callable, Optional


@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass


EventListener = Callable[[DomainEvent], None]


@dataclass
class AttemptFailed(DomainEvent):
    """A single backend attempt raised."""
    operation: str
    attempt_number: int
    error_type: str
    error_message: str
    retryable: bool
    timestamp: float = field(default_factory=time.time)


@dataclass
class RetryScheduled(DomainEvent):
    """A retry will run after `delay_seconds`."""
    operation: str
    attempt_number: int
    delay_seconds: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class RetriesExhausted(DomainEvent):
    operation: str
    attempts: int
    error_type: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class WriteQueued(DomainEvent):
    """A write was deferred to the offline queue."""
    operation_id: int
    description: str
    reason: str  # 'offline' or 'retries-exhausted'
    timestamp: float = field(default_factory=time.time)


@dataclass
class QueueDrained(DomainEvent):
    replayed: int
    failed: int
    deferred: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class ConnectionChanged(DomainEvent):
    online: bool
    timestamp: float = field(default_factory=time.time)


def log_event(logger, event: DomainEvent, listener: Optional[EventListener] = None) -> None:
    """Logs an event at debug level and forwards it to an optional listener."""
    logger.debug(f"EVENT: {event}")
    if listener is not None:
        listener(event)
