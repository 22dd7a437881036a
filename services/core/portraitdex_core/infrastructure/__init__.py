"""Infrastructure components for Portraitdex.

This package contains infrastructure-level components like:
- Rate limiting
- External service clients
"""

from portraitdex_core.infrastructure.rate_limiter import (
    BackoffStrategy,
    IntervalGate,
    RateLimiter,
    RateLimitConfig,
    RateLimitExceeded,
)

__all__ = [
    "BackoffStrategy",
    "IntervalGate",
    "RateLimiter",
    "RateLimitConfig",
    "RateLimitExceeded",
]
