"""Redis connection and key schema.

Key schema (all keys carry the configured prefix, "ddos:" by default):

- meta:lastRefreshed  -> string timestamp (epoch ms), no TTL
- lock:refresh        -> string lock token, TTL lock_ttl
- geo:<ip>            -> JSON {latitude, longitude, country, city}, TTL geo_ttl
- events:sorted       -> sorted set ip -> score, no TTL
- event:<ip>          -> JSON full event record, TTL events_ttl
- summary             -> JSON cached summary, TTL summary_ttl
"""
from typing import Optional
import logging

import redis.asyncio as redis

from .config.settings import Settings

logger = logging.getLogger(__name__)


class RedisKeys:
    def __init__(self, prefix: str = "ddos:"):
        self.prefix = prefix
        self.meta_last_refreshed = f"{prefix}meta:lastRefreshed"
        self.lock_refresh = f"{prefix}lock:refresh"
        self.events_sorted = f"{prefix}events:sorted"
        self.summary = f"{prefix}summary"

    def geo_key(self, ip: str) -> str:
        return f"{self.prefix}geo:{ip}"

    def event_key(self, ip: str) -> str:
        return f"{self.prefix}event:{ip}"

    def pattern(self, kind: str = "") -> str:
        return f"{self.prefix}{kind}*"


def create_redis_client(settings: Settings) -> Optional[redis.Redis]:
    """Build the Redis client, or None when no Redis URL is configured"""
    if not settings.redis_url:
        logger.warning("REDIS_URL not configured, running with local caches only")
        return None

    return redis.Redis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_timeout,
    )
