import time
from typing import Dict, List, Optional

from ..models.threat_event import NormalizedEvent, RawEntry


def now_ms() -> int:
    return int(time.time() * 1000)


def normalize_events(raw_entries: List[RawEntry], now: Optional[int] = None) -> List[NormalizedEvent]:
    """Stamp every entry of one fetch cycle with the same fetch time"""
    timestamp = now if now is not None else now_ms()
    return [
        NormalizedEvent(ip=entry.ip, source=entry.source, reason=entry.reason, timestamp=timestamp)
        for entry in raw_entries
    ]


def deduplicate_events(events: List[NormalizedEvent]) -> Dict[str, List[NormalizedEvent]]:
    # keyed by the literal IP string, insertion order follows feed order
    ip_map: Dict[str, List[NormalizedEvent]] = {}
    for event in events:
        ip_map.setdefault(event.ip, []).append(event)
    return ip_map
