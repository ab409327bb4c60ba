"""
Per-wallet message rate limiting.

In-memory store for single-instance deployments; SQL store
(RATE_LIMIT_DB_URL) when several gateway instances share the limit.
"""

from backend_x402.rate_limit.limiter import (
    InMemoryRateLimitStore,
    RateDecision,
    RateLimiter,
    RateLimitStore,
    RateWindow,
)

__all__ = [
    "InMemoryRateLimitStore",
    "RateDecision",
    "RateLimitStore",
    "RateLimiter",
    "RateWindow",
]
