import asyncio
from typing import Dict, List

from ..models.threat_event import AttackEvent, GeoLocation


class ProcessCacheState:
    """
    Per-process fallback tier for the distributed cache.

    Built once per process and handed to every service that needs it.
    Nothing here is authoritative: Redis wins whenever it answers.
    """

    def __init__(self):
        self.last_refreshed: int = 0
        self.events: List[AttackEvent] = []
        self.geo_cache: Dict[str, GeoLocation] = {}
        # Held while this process is refreshing
        self.refresh_lock = asyncio.Lock()

    @property
    def refreshing(self) -> bool:
        return self.refresh_lock.locked()

    def publish(self, events: List[AttackEvent], timestamp: int) -> None:
        self.events = list(events)
        self.last_refreshed = timestamp
