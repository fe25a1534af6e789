"""Backend-neutral query description.

Domain services build `Query` objects; each backend adapter translates them
into its own query language. Keeping them frozen and hashable lets the query
signature double as part of a cache key.
"""

from dataclasses import dataclass, field
from typing import Any, Tuple

SUPPORTED_OPERATORS = ("==", "!=", "<", "<=", ">", ">=", "in", "array-contains")

ASCENDING = "asc"
DESCENDING = "desc"


@dataclass(frozen=True)
class FieldFilter:
    """A single `field <op> value` condition."""
    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in SUPPORTED_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op!r}")


@dataclass(frozen=True)
class OrderBy:
    field: str
    direction: str = ASCENDING

    def __post_init__(self) -> None:
        if self.direction not in (ASCENDING, DESCENDING):
            raise ValueError(f"Unsupported sort direction: {self.direction!r}")


@dataclass(frozen=True)
class Query:
    """Filters, ordering and limit applied to one collection."""
    filters: Tuple[FieldFilter, ...] = field(default_factory=tuple)
    order_by: Tuple[OrderBy, ...] = field(default_factory=tuple)
    limit: int = 0  # 0 means unlimited

    def where(self, field_name: str, op: str, value: Any) -> "Query":
        return Query(self.filters + (FieldFilter(field_name, op, value),), self.order_by, self.limit)

    def order(self, field_name: str, direction: str = ASCENDING) -> "Query":
        return Query(self.filters, self.order_by + (OrderBy(field_name, direction),), self.limit)

    def limited(self, count: int) -> "Query":
        if count < 0:
            raise ValueError("Query limit must be non-negative.")
        return Query(self.filters, self.order_by, count)

    def signature(self) -> str:
        """Stable string form used when building list cache keys."""
        parts = [f"{f.field}{f.op}{f.value!r}" for f in self.filters]
        parts += [f"order={o.field}:{o.direction}" for o in self.order_by]
        if self.limit:
            parts.append(f"limit={self.limit}")
        return "|".join(parts) or "all"


@dataclass(frozen=True)
class Increment:
    """Patch value meaning "add `amount` to the stored number"."""
    amount: float = 1
