"""Rate limiting adapters.

The HTTP pipeline talks to ``AbstractRateLimiter``; the in-memory
sliding-window store is the only implementation.
"""
