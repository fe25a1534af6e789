"""API Resilience Implementations.

Contains the token-bucket rate limiter and the retry policy with
exponential backoff used for every backend call.
Bounded Context: Backend Resilience
"""
