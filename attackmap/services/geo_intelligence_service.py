import aiohttp
import asyncio
import logging
from typing import Dict, List, Optional

from ..config.settings import Settings
from ..models.threat_event import GeoLocation
from .cache_service import CacheService
from .cache_state import ProcessCacheState

logger = logging.getLogger(__name__)


class GeointelligenceServices:
    """
    IP -> location lookups. Redis first, then the process-local mirror,
    then the ip-api style batch endpoint for whatever is left.
    """

    def __init__(
        self,
        settings: Settings,
        cache_service: CacheService,
        state: ProcessCacheState,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.settings = settings
        self.cache_service = cache_service
        self.state = state
        self.session = session

    async def get_session(self) -> aiohttp.ClientSession:
        if not self.session:
            self.session = aiohttp.ClientSession()
        return self.session

    async def geolocate(self, ip: str) -> Optional[GeoLocation]:
        if ip in self.state.geo_cache:
            return self.state.geo_cache[ip]

        results = await self.resolve_batch([ip])
        return results.get(ip)

    async def resolve_batch(self, ips: List[str]) -> Dict[str, GeoLocation]:
        results: Dict[str, GeoLocation] = {}
        ips = list(dict.fromkeys(ips))
        if not ips:
            return results

        # Redis tier
        redis_hits = await self.cache_service.get_geo_batch(ips)
        results.update(redis_hits)
        self.state.geo_cache.update(redis_hits)

        # Process-local tier
        for ip in ips:
            if ip not in results and ip in self.state.geo_cache:
                results[ip] = self.state.geo_cache[ip]

        uncached = [ip for ip in ips if ip not in results]
        logger.info(f"Geolocating {len(uncached)} new IPs ({len(ips) - len(uncached)} cached)")

        if not uncached:
            return results

        if not self.settings.ip_api_batch_url:
            logger.warning("IP_API_BATCH_URL not set - skipping geolocation for uncached IPs")
            return results

        fresh = await self._lookup_remote(uncached)

        results.update(fresh)
        self.state.geo_cache.update(fresh)
        await self.cache_service.set_geo_batch(fresh)

        return results

    async def _lookup_remote(self, ips: List[str]) -> Dict[str, GeoLocation]:
        fresh: Dict[str, GeoLocation] = {}
        batch_size = max(1, min(100, self.settings.geo_batch_size))

        for i in range(0, len(ips), batch_size):
            chunk = ips[i:i + batch_size]
            fresh.update(await self._lookup_chunk(chunk))

            # Stay under the provider's rate limit
            if i + batch_size < len(ips):
                await asyncio.sleep(self.settings.geo_batch_delay)

        return fresh

    async def _lookup_chunk(self, chunk: List[str]) -> Dict[str, GeoLocation]:
        resolved: Dict[str, GeoLocation] = {}

        try:
            session = await self.get_session()
            body = [{"query": ip} for ip in chunk]
            timeout = aiohttp.ClientTimeout(total=self.settings.geo_timeout)
            async with session.post(self.settings.ip_api_batch_url, json=body, timeout=timeout) as response:
                if not 200 <= response.status < 300:
                    logger.error(f"ip-api batch request failed: {response.status}")
                    return resolved
                data = await response.json()

        except asyncio.TimeoutError:
            logger.error(f"ip-api batch request timed out ({len(chunk)} IPs)")
            return resolved
        except Exception as e:
            logger.error(f"Error during ip-api batch geolocation: {e}")
            return resolved

        if not isinstance(data, list):
            logger.error(f"Unexpected batch response from ip-api: {data}")
            return resolved

        # Answers come back in query order
        for ip, entry in zip(chunk, data):
            if not isinstance(entry, dict) or entry.get("status") != "success":
                continue
            try:
                resolved[ip] = GeoLocation(
                    latitude=entry["lat"],
                    longitude=entry["lon"],
                    country=entry.get("country") or "Unknown",
                    city=entry.get("city"),
                )
            except (KeyError, ValueError) as e:
                logger.warning(f"Malformed geo entry for {ip}: {e}")

        return resolved

    async def close(self):
        if self.session:
            await self.session.close()
            self.session = None
