"""Rate limiting strategies.

This package provides the counting side of the limiter behind a small
abstraction, so the Redis sorted-set log can be replaced by another store or
algorithm without changing the limiter core or the HTTP layer.
"""

from blog_api.adapters.rate_limit.base import (
    AbstractStrategy,
    Decision,
    RateLimitRequest,
    State,
)
from blog_api.adapters.rate_limit.factory import create_redis_client, create_strategy
from blog_api.adapters.rate_limit.in_memory import InMemorySlidingWindowStrategy
from blog_api.adapters.rate_limit.redis_sorted_set import SortedSetCounterStrategy

__all__ = [
    "AbstractStrategy",
    "Decision",
    "InMemorySlidingWindowStrategy",
    "RateLimitRequest",
    "SortedSetCounterStrategy",
    "State",
    "create_redis_client",
    "create_strategy",
]
