"""Infrastructure adapters (Redis connection factory and durable stores)."""

from dispute_core_lib.infrastructure.redis_setup import get_redis_client, parse_sentinel_hosts
from dispute_core_lib.infrastructure.redis_stores import RedisJobResultStore, RedisRateLimitStore

__all__ = [
    "get_redis_client",
    "parse_sentinel_hosts",
    "RedisJobResultStore",
    "RedisRateLimitStore",
]
