import asyncio
import hashlib
import logging
from typing import Dict, List

from ..config.settings import Settings
from ..models.threat_event import AttackEvent, GeoLocation, ScoredEvent
from .cache_service import CacheService
from .cache_state import ProcessCacheState
from .feed_service import FeedService
from .geo_intelligence_service import GeointelligenceServices
from .normalize import deduplicate_events, normalize_events, now_ms
from .scoring_service import RiskScoringService

logger = logging.getLogger(__name__)


def event_id(ip: str) -> str:
    # Same IP, same id, across refresh cycles
    return "evt_" + hashlib.sha256(ip.encode("utf-8")).hexdigest()[:16]


class RefreshService:
    """
    Keeps the cached event set fresh.

    Refreshes are lazy: a caller asks for data, and only if the data is
    older than refresh_interval_ms (or missing) does a rebuild happen.
    One rebuild at a time per process (local lock) and across processes
    (Redis SET NX lock). A failed or empty rebuild never replaces the
    current event set.
    """

    def __init__(
        self,
        settings: Settings,
        cache_service: CacheService,
        feed_service: FeedService,
        geo_service: GeointelligenceServices,
        scoring_service: RiskScoringService,
        state: ProcessCacheState,
    ):
        self.settings = settings
        self.cache_service = cache_service
        self.feed_service = feed_service
        self.geo_service = geo_service
        self.scoring_service = scoring_service
        self.state = state

    async def get_current_events(self) -> List[AttackEvent]:
        events = await self.cache_service.get_top_events(self.settings.max_events)
        if events:
            return events
        # Redis empty or unreachable, fall back to what this process last published
        return list(self.state.events[:self.settings.max_events])

    async def get_last_refreshed(self) -> int:
        last = await self.cache_service.get_last_refreshed()
        if last is None:
            return self.state.last_refreshed
        return last

    async def is_stale(self) -> bool:
        last = await self.get_last_refreshed()
        return now_ms() - last >= self.settings.refresh_interval_ms

    async def ensure_fresh_data(self) -> List[AttackEvent]:
        events = await self.get_current_events()
        if events and not await self.is_stale():
            return events

        if self.state.refreshing:
            # Another request in this process is already rebuilding
            logger.debug("Refresh already running locally, waiting for it")
            async with self.state.refresh_lock:
                pass
            return await self.get_current_events()

        async with self.state.refresh_lock:
            # A refresh may have finished while this request was checking
            events = await self.get_current_events()
            if events and not await self.is_stale():
                return events

            token = await self.cache_service.acquire_refresh_lock()
            if token is None:
                logger.info("Refresh lock held by another instance, backing off")
                await asyncio.sleep(self.settings.lock_wait)
                return await self.get_current_events()

            try:
                await self.refresh()
            finally:
                await self.cache_service.release_refresh_lock(token)

        return await self.get_current_events()

    async def refresh(self) -> bool:
        """Run one refresh cycle and publish it. Returns True when a new set was published"""
        try:
            events = await self.run_pipeline()
        except Exception as e:
            logger.exception(f"Refresh cycle failed, keeping cached events: {e}")
            return False

        if not events:
            logger.warning("Refresh produced no events, keeping cached events")
            return False

        timestamp = now_ms()
        await self.cache_service.store_events(events)
        await self.cache_service.set_last_refreshed(timestamp)
        self.state.publish(events, timestamp)

        logger.info(f"Published {len(events)} attack events")
        return True

    async def run_pipeline(self) -> List[AttackEvent]:
        raw_entries = await self.feed_service.fetch_threat_feeds()
        if not raw_entries:
            return []

        normalized = normalize_events(raw_entries)
        ip_map = deduplicate_events(normalized)
        scored = self.scoring_service.score_events(ip_map)
        top = self.scoring_service.top_scored(scored, self.settings.max_events)

        logger.info(
            f"Pipeline: {len(raw_entries)} entries, {len(ip_map)} unique IPs, "
            f"geolocating top {len(top)}"
        )

        geo = await self.geo_service.resolve_batch([e.ip for e in top])
        return self.build_attack_events(top, geo)

    def build_attack_events(self, top: List[ScoredEvent], geo: Dict[str, GeoLocation]) -> List[AttackEvent]:
        events: List[AttackEvent] = []
        for scored in top:
            location = geo.get(scored.ip)
            if location is None:
                # Unresolved IPs are dropped, never placed at a default location
                continue
            events.append(
                AttackEvent(
                    id=event_id(scored.ip),
                    ip=scored.ip,
                    latitude=location.latitude,
                    longitude=location.longitude,
                    country=location.country,
                    city=location.city,
                    score=scored.score,
                    source=scored.source,
                    reason=scored.reason,
                    timestamp=scored.timestamp,
                )
            )
        return events
