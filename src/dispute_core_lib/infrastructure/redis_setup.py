"""Redis connection factory (standalone or Sentinel).

Used when ``STATE_BACKEND=redis`` to make job results and rate-limit windows
survive restarts and be shared between service replicas.
"""

import logging
from typing import List, Optional, Tuple

from redis.asyncio import Redis
from redis.asyncio.sentinel import Sentinel

from dispute_core_lib.config.settings import RedisSettings
from dispute_core_lib.utils import service_startup_retry

logger = logging.getLogger(__name__)

DEFAULT_SENTINEL_PORT = 26379


def parse_sentinel_hosts(hosts_str: str) -> List[Tuple[str, int]]:
    """Parse a comma-separated "host:port" list.

    Example:
        >>> parse_sentinel_hosts("sentinel1:26379, sentinel2")
        [('sentinel1', 26379), ('sentinel2', 26379)]
    """
    sentinels = []
    for host_port in hosts_str.split(","):
        host_port = host_port.strip()
        if not host_port:
            continue
        host, sep, port_str = host_port.rpartition(":")
        if sep:
            sentinels.append((host, int(port_str)))
        else:
            sentinels.append((host_port, DEFAULT_SENTINEL_PORT))
    return sentinels


@service_startup_retry
async def _verify_redis_connection(client: Redis) -> None:
    await client.ping()
    logger.info("Redis connection verified")


def _build_client(settings: RedisSettings, decode_responses: bool) -> Redis:
    common = dict(
        db=settings.db,
        password=settings.password,
        decode_responses=decode_responses,
        socket_keepalive=True,
        health_check_interval=30,
    )

    if settings.mode == "sentinel":
        sentinels = parse_sentinel_hosts(settings.sentinel_hosts)
        if not sentinels:
            raise ValueError("REDIS_SENTINEL_HOSTS is required for Sentinel mode")
        logger.info(f"Connecting to Redis Sentinel: master={settings.master_set}, sentinels={sentinels}")
        sentinel = Sentinel(
            sentinels,
            sentinel_kwargs={"password": settings.password} if settings.password else {},
            socket_keepalive=True,
        )
        return sentinel.master_for(settings.master_set, **common)

    logger.info(f"Connecting to standalone Redis: {settings.host}:{settings.port}/{settings.db}")
    return Redis(host=settings.host, port=settings.port, socket_connect_timeout=5, **common)


async def get_redis_client(
    settings: Optional[RedisSettings] = None,
    decode_responses: bool = True,
) -> Redis:
    """Create a Redis client and verify it answers a ping.

    Args:
        settings: Connection settings (default: read from REDIS_* environment variables)
        decode_responses: Decode responses to strings (default: True)

    Raises:
        ValueError: If Sentinel mode is configured without sentinel hosts
        ConnectionError: If Redis stays unreachable after retries
    """
    settings = settings or RedisSettings.from_env()
    client = _build_client(settings, decode_responses)
    await _verify_redis_connection(client)
    logger.info(f"Redis client ready ({settings.mode})")
    return client
