from collections import Counter
import logging
from typing import Any, Dict, List

from ..models.threat_event import AttackEvent, CountryStats, DataSource, Summary
from .cache_service import CacheService
from .feed_service import FeedService
from .refresh_service import RefreshService

logger = logging.getLogger(__name__)


def build_summary(events: List[AttackEvent]) -> Summary:
    country_count = Counter(e.country for e in events)
    top_countries = [
        CountryStats(country=country, count=count)
        for country, count in country_count.most_common(5)
    ]
    average_risk = round(sum(e.score for e in events) / len(events)) if events else 0
    last_update = max((e.timestamp for e in events), default=0)

    return Summary(
        total=len(events),
        top_countries=top_countries,
        average_risk=average_risk,
        last_update=last_update,
    )


class AttackEventService:
    """The read operations the HTTP layer is allowed to call"""

    def __init__(self, refresh_service: RefreshService, cache_service: CacheService, feed_service: FeedService):
        self.refresh_service = refresh_service
        self.cache_service = cache_service
        self.feed_service = feed_service

    async def list_events(self) -> List[AttackEvent]:
        return await self.refresh_service.ensure_fresh_data()

    async def get_summary(self) -> Summary:
        events = await self.refresh_service.ensure_fresh_data()

        cached = await self.cache_service.get_cached_summary()
        if cached is not None:
            return cached

        summary = build_summary(events)
        await self.cache_service.set_cached_summary(summary)
        return summary

    def list_data_sources(self) -> List[DataSource]:
        return self.feed_service.get_data_sources()

    async def get_debug_stats(self) -> Dict[str, Any]:
        stats = await self.cache_service.get_stats()
        state = self.refresh_service.state
        return {
            "redis": stats,
            "local": {
                "eventCount": len(state.events),
                "lastRefreshed": state.last_refreshed,
                "geoCacheSize": len(state.geo_cache),
                "refreshing": state.refreshing,
            },
        }
