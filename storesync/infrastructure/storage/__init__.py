"""Key-value stores backing the offline queue."""
