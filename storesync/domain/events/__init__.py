"""Domain Event definitions.

Represents significant occurrences within the data-access layer (retries,
queued writes, drains) that logging or tests may react to.
"""
