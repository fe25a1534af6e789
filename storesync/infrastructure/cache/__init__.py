"""Caching Service Implementation.

Provides the in-memory LRU cache with lazy TTL expiry used in front of
every backend read.
Bounded Context: Cache Management
"""
