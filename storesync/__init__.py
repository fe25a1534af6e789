"""storesync: resilient data access for a document-store backed storefront.

Combines an LRU cache, a token-bucket rate limiter, a durable offline
queue, a connection monitor and a retry policy behind one read/write
contract used by the product, FAQ and contact services.
"""

__version__ = "1.0.0"
