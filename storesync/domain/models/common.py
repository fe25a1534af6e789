"""Defines common Value Objects used across the data-access layer.

These objects represent simple values like cache keys and queue ids,
keeping signatures readable without runtime cost.
"""

from typing import Any, Dict, NewType, TypedDict

# === Caching Context ===
CacheKey = NewType("CacheKey", str)              # Unique key for a cache entry, e.g. 'product:p1'
CachePrefix = NewType("CachePrefix", str)        # Prefix shared by related keys, e.g. 'products:'

# === Offline Queue Context ===
OperationId = NewType("OperationId", int)        # Auto-increment id assigned on enqueue

# Records travel as plain JSON-compatible mappings
Record = Dict[str, Any]


class MetricsSnapshot(TypedDict):
    """Read-only view of the data-access counters."""
    cache_hits: int
    cache_misses: int
    network_requests: int
    network_errors: int
    rate_limit_rejections: int
    queue_depth: int
    deduplicated_reads: int
    queued_writes: int
    replayed_operations: int
    failed_replays: int
