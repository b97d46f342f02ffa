import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, TypeVar

import redis.asyncio as redis
from pydantic import BaseModel, ValidationError
from redis.exceptions import WatchError

from ..cache import RedisKeys
from ..config.settings import Settings
from ..models.threat_event import AttackEvent, GeoLocation, Summary

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


def _decode(model: Type[M], key: str, raw: Optional[str]) -> Optional[M]:
    """Parse one cached record. A record that does not fit the model is a miss."""
    if not raw:
        return None
    try:
        return model.model_validate_json(raw)
    except ValidationError as e:
        logger.warning(f"[Redis] Ignoring malformed record at {key}: {e.error_count()} errors")
        return None


class CacheService:
    """
    Distributed cache operations: refresh lock, refresh metadata,
    geolocation cache, event set and summary.

    Every operation has a safe default. When Redis is missing or
    failing the caller gets the default back instead of an exception,
    and Redis is skipped until redis_retry_interval has passed.
    """

    def __init__(self, settings: Settings, client: Optional[redis.Redis] = None):
        self.settings = settings
        self.client = client
        self.keys = RedisKeys(settings.redis_key_prefix)
        self.available = client is not None
        self.last_failure = 0.0

    def _get_client(self) -> Optional[redis.Redis]:
        if self.client is None:
            return None
        if not self.available:
            if time.monotonic() - self.last_failure < self.settings.redis_retry_interval:
                return None
            self.available = True
        return self.client

    def _mark_unavailable(self) -> None:
        self.available = False
        self.last_failure = time.monotonic()

    async def _safe_op(
        self,
        operation: Callable[[redis.Redis], Awaitable[T]],
        default: T,
        operation_name: str = "Operation",
    ) -> T:
        client = self._get_client()
        if client is None:
            logger.debug(f"[Redis] {operation_name}: Redis not available, using default")
            return default

        try:
            return await operation(client)
        except Exception as e:
            logger.error(f"[Redis] {operation_name} failed: {e}")
            self._mark_unavailable()
            return default

    async def is_available(self) -> bool:
        async def _ping(client: redis.Redis) -> bool:
            return bool(await client.ping())

        return await self._safe_op(_ping, False, "ping")

    # Refresh lock

    async def acquire_refresh_lock(self) -> Optional[str]:
        """
        SET NX EX on the lock key. Returns the lock token when acquired,
        None when another instance holds the lock.
        Without a reachable Redis the refresh is allowed (local-only mode).
        """
        token = f"lock_{int(time.time() * 1000)}_{uuid.uuid4().hex[:10]}"

        client = self._get_client()
        if client is None:
            return token

        try:
            result = await client.set(
                self.keys.lock_refresh, token, nx=True, ex=self.settings.lock_ttl
            )
            return token if result else None
        except Exception as e:
            logger.error(f"[Redis] Failed to acquire lock: {e}")
            self._mark_unavailable()
            # Better a duplicate refresh than a deadlock
            return token

    async def release_refresh_lock(self, token: str) -> None:
        client = self._get_client()
        if client is None:
            return

        # Compare-and-delete under WATCH: the DEL is discarded if the lock
        # expired and changed hands after the GET
        try:
            async with client.pipeline(transaction=True) as pipe:
                await pipe.watch(self.keys.lock_refresh)
                current = await pipe.get(self.keys.lock_refresh)
                if current != token:
                    return
                pipe.multi()
                pipe.delete(self.keys.lock_refresh)
                await pipe.execute()
        except WatchError:
            logger.info("[Redis] Refresh lock changed hands during release, leaving it")
        except Exception as e:
            # Lock will auto-expire via TTL
            logger.error(f"[Redis] Failed to release lock: {e}")
            self._mark_unavailable()

    # Metadata

    async def get_last_refreshed(self) -> Optional[int]:
        """Last publish time in epoch ms, 0 if never, None if Redis is unreachable"""
        async def _get(client: redis.Redis) -> Optional[int]:
            value = await client.get(self.keys.meta_last_refreshed)
            return int(value) if value else 0

        return await self._safe_op(_get, None, "getLastRefreshed")

    async def set_last_refreshed(self, timestamp: int) -> bool:
        async def _set(client: redis.Redis) -> bool:
            await client.set(self.keys.meta_last_refreshed, str(timestamp))
            return True

        return await self._safe_op(_set, False, "setLastRefreshed")

    # Geo cache

    async def get_geo_batch(self, ips: List[str]) -> Dict[str, GeoLocation]:
        if not ips:
            return {}

        async def _mget(client: redis.Redis) -> Dict[str, GeoLocation]:
            values = await client.mget([self.keys.geo_key(ip) for ip in ips])
            results: Dict[str, GeoLocation] = {}
            for ip, value in zip(ips, values):
                geo = _decode(GeoLocation, self.keys.geo_key(ip), value)
                if geo is not None:
                    results[ip] = geo
            return results

        return await self._safe_op(_mget, {}, "getGeoBatch")

    async def set_geo_batch(self, entries: Dict[str, GeoLocation]) -> bool:
        if not entries:
            return False

        async def _store(client: redis.Redis) -> bool:
            async with client.pipeline(transaction=False) as pipe:
                for ip, geo in entries.items():
                    pipe.set(self.keys.geo_key(ip), geo.model_dump_json(), ex=self.settings.geo_ttl)
                await pipe.execute()
            logger.info(f"[Redis] Cached {len(entries)} geo entries")
            return True

        return await self._safe_op(_store, False, "setGeoBatch")

    # Events

    async def store_events(self, events: List[AttackEvent]) -> bool:
        """
        Replace the whole event set in one MULTI/EXEC:
        sorted set ip -> score plus one full record per IP.
        """
        if not events:
            return False

        async def _store(client: redis.Redis) -> bool:
            async with client.pipeline(transaction=True) as pipe:
                pipe.delete(self.keys.events_sorted)
                pipe.zadd(self.keys.events_sorted, {e.ip: e.score for e in events})
                for event in events:
                    pipe.set(
                        self.keys.event_key(event.ip),
                        event.model_dump_json(),
                        ex=self.settings.events_ttl,
                    )
                await pipe.execute()
            logger.info(f"[Redis] Stored {len(events)} events")
            return True

        return await self._safe_op(_store, False, "storeEvents")

    async def get_top_events(self, limit: Optional[int] = None) -> List[AttackEvent]:
        limit = limit if limit is not None else self.settings.max_events
        if limit <= 0:
            return []

        async def _top(client: redis.Redis) -> List[AttackEvent]:
            top_ips = await client.zrange(self.keys.events_sorted, 0, limit - 1, desc=True)
            if not top_ips:
                return []

            records = await client.mget([self.keys.event_key(ip) for ip in top_ips])

            # Records can expire on their own TTL or be malformed, skip those
            events = []
            for ip, record in zip(top_ips, records):
                event = _decode(AttackEvent, self.keys.event_key(ip), record)
                if event is not None:
                    events.append(event)
            events.sort(key=lambda e: e.score, reverse=True)
            return events

        return await self._safe_op(_top, [], "getTopEvents")

    async def get_event_count(self) -> int:
        async def _count(client: redis.Redis) -> int:
            return int(await client.zcard(self.keys.events_sorted) or 0)

        return await self._safe_op(_count, 0, "getEventCount")

    # Summary

    async def get_cached_summary(self) -> Optional[Summary]:
        async def _get(client: redis.Redis) -> Optional[Summary]:
            data = await client.get(self.keys.summary)
            return _decode(Summary, self.keys.summary, data)

        return await self._safe_op(_get, None, "getCachedSummary")

    async def set_cached_summary(self, summary: Summary, ttl: Optional[int] = None) -> bool:
        if ttl is None:
            ttl = self.settings.summary_ttl
        if ttl <= 0:
            # Non-positive expiry means do not cache
            return False

        async def _set(client: redis.Redis) -> bool:
            await client.set(self.keys.summary, summary.model_dump_json(by_alias=True), ex=ttl)
            return True

        return await self._safe_op(_set, False, "setCachedSummary")

    # Admin / debug

    async def clear_all_data(self) -> int:
        async def _clear(client: redis.Redis) -> int:
            keys = [key async for key in client.scan_iter(match=self.keys.pattern())]
            if keys:
                await client.delete(*keys)
                logger.info(f"[Redis] Cleared {len(keys)} keys")
            return len(keys)

        return await self._safe_op(_clear, 0, "clearAllData")

    async def get_stats(self) -> Dict[str, Any]:
        async def _stats(client: redis.Redis) -> Dict[str, Any]:
            event_count = await client.zcard(self.keys.events_sorted)
            last_refreshed = await client.get(self.keys.meta_last_refreshed)
            geo_keys = 0
            async for _ in client.scan_iter(match=self.keys.pattern("geo:")):
                geo_keys += 1
            return {
                "available": True,
                "eventCount": int(event_count or 0),
                "lastRefreshed": int(last_refreshed) if last_refreshed else 0,
                "geoKeys": geo_keys,
            }

        default = {"available": False, "eventCount": 0, "lastRefreshed": 0, "geoKeys": 0}
        return await self._safe_op(_stats, default, "getStats")

    async def close(self):
        if self.client is not None:
            await self.client.aclose()
