"""Domain Layer: value objects, interfaces, events and the error taxonomy.

Nothing in here depends on a concrete cache, store or backend.
"""
