"""Redis-backed job-result and rate-limit stores.

Job results are stored as JSON strings with a TTL. Rate-limit windows use
``INCR`` plus ``EXPIRE`` on the first hit, so Redis expiry is the window;
refunds run under ``WATCH`` so an expired window is never decremented.
"""

import logging
import math
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import WatchError

from dispute_core_lib.models.analysis import RateLimitWindow, ThreadResult
from dispute_core_lib.orchestration.job_store import JobResultStore
from dispute_core_lib.orchestration.rate_limiter import RateLimitStore
from dispute_core_lib.utils import create_custom_retry

logger = logging.getLogger(__name__)

# Short retry for dropped connections during Sentinel failover
redis_operation_retry = create_custom_retry(
    max_attempts=3, min_wait=0.1, max_wait=1, retry_on=(RedisConnectionError,)
)


class RedisJobResultStore(JobResultStore):
    """Job results shared across replicas and restarts."""

    def __init__(self, client: Redis, ttl_seconds: int = 86400, prefix: str = "analysis:job:"):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    def _key(self, job_id: str) -> str:
        return f"{self.prefix}{job_id}"

    @redis_operation_retry
    async def get(self, job_id: str) -> Optional[ThreadResult]:
        raw = await self.client.get(self._key(job_id))
        if raw is None:
            return None
        return ThreadResult.model_validate_json(raw)

    @redis_operation_retry
    async def put(self, result: ThreadResult) -> ThreadResult:
        await self.client.set(
            self._key(result.job_id),
            result.model_dump_json(),
            ex=self.ttl_seconds,
        )
        return result

    @redis_operation_retry
    async def put_new(self, result: ThreadResult) -> ThreadResult:
        stored = await self.client.set(
            self._key(result.job_id),
            result.model_dump_json(),
            ex=self.ttl_seconds,
            nx=True,
        )
        if stored:
            return result
        existing = await self.get(result.job_id)
        return existing if existing is not None else result


class RedisRateLimitStore(RateLimitStore):
    """Fixed windows implemented with INCR and EXPIRE.

    The window start is kept in a companion ``<key>:start`` key with the same
    expiry, so a refund can tell which window it belongs to.
    """

    def __init__(self, client: Redis):
        self.client = client

    @staticmethod
    def _start_key(key: str) -> str:
        return f"{key}:start"

    @redis_operation_retry
    async def hit(self, key: str, window_seconds: float, now: float) -> RateLimitWindow:
        count = await self.client.incr(key)
        ttl_seconds = math.ceil(window_seconds)
        start_key = self._start_key(key)

        if count == 1:
            await self.client.expire(key, ttl_seconds)
            await self.client.set(start_key, repr(now), ex=ttl_seconds)
            window_start = now
        else:
            remaining = await self.client.ttl(key)
            if remaining < 0:
                # Key lost its expiry (crash between INCR and EXPIRE)
                await self.client.expire(key, ttl_seconds)
                remaining = ttl_seconds
            stored_start = await self.client.get(start_key)
            if stored_start is not None:
                window_start = float(stored_start)
            else:
                window_start = now - (ttl_seconds - remaining)
                await self.client.set(start_key, repr(window_start), ex=remaining)

        return RateLimitWindow(
            key=key,
            count=count,
            window_start=window_start,
            window_seconds=ttl_seconds,
        )

    @redis_operation_retry
    async def refund(self, key: str, now: float, window_start: Optional[float] = None) -> None:
        start_key = self._start_key(key)
        async with self.client.pipeline(transaction=True) as pipe:
            # EXEC aborts when either key changes or expires after WATCH
            await pipe.watch(key, start_key)
            count = await pipe.get(key)
            if count is None or int(count) <= 0:
                return
            if window_start is not None:
                stored_start = await pipe.get(start_key)
                if stored_start is None or float(stored_start) != window_start:
                    logger.info(f"[RateLimiter] Window for {key} rolled over, nothing to refund")
                    return
            pipe.multi()
            pipe.decr(key)
            try:
                await pipe.execute()
            except WatchError:
                logger.info(f"[RateLimiter] Window for {key} changed during refund, skipped")

    @redis_operation_retry
    async def reset(self, key: str) -> None:
        await self.client.delete(key, self._start_key(key))
