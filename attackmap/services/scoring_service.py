import logging
from typing import Dict, List

from ..models.threat_event import NormalizedEvent, ScoredEvent

logger = logging.getLogger(__name__)


class RiskScoringService:
    """
    Reduces every IP's observations to one 0-100 risk score.
    Base severity is the strongest single report, corroboration
    from extra feeds adds a capped bonus on top.
    """

    # Checked in order, first match wins
    SEVERITY_TIERS = [
        (("botnet", "c2"), 60),
        (("malware",), 40),
        (("scanner", "abuse"), 30),
        (("spam",), 25),
    ]
    DEFAULT_SEVERITY = 20

    FEED_BONUS = 20
    MAX_FEED_BONUS = 40

    HIGH_THRESHOLD = 70
    MEDIUM_THRESHOLD = 40

    def calc_base_severity(self, reason: str) -> int:
        reason = reason.lower()
        for keywords, severity in self.SEVERITY_TIERS:
            if any(k in reason for k in keywords):
                return severity
        return self.DEFAULT_SEVERITY

    def calc_feed_bonus(self, feed_count: int) -> int:
        if feed_count <= 1:
            return 0
        return min(self.MAX_FEED_BONUS, self.FEED_BONUS * (feed_count - 1))

    def calc_risk_score(self, events: List[NormalizedEvent]) -> int:
        if not events:
            return 0

        base = max(self.calc_base_severity(e.reason) for e in events)
        feed_count = len({e.source for e in events})
        score = base + self.calc_feed_bonus(feed_count)

        # Clamp to 0-100 range
        return min(100, max(0, score))

    def score_events(self, ip_map: Dict[str, List[NormalizedEvent]]) -> Dict[str, ScoredEvent]:
        scored: Dict[str, ScoredEvent] = {}

        for ip, events in ip_map.items():
            if not events:
                continue

            risk = self.calc_risk_score(events)

            unique_reasons: List[str] = []
            unique_sources: List[str] = []
            for e in events:
                if e.reason not in unique_reasons:
                    unique_reasons.append(e.reason)
                if e.source not in unique_sources:
                    unique_sources.append(e.source)

            scored[ip] = ScoredEvent(
                ip=ip,
                source=", ".join(unique_sources),
                reason=", ".join(unique_reasons),
                timestamp=events[0].timestamp,
                risk=risk,
                score=risk,
                feed_count=len(unique_sources),
            )

        logger.debug(f"Scored {len(scored)} unique IPs")
        return scored

    def top_scored(self, scored: Dict[str, ScoredEvent], limit: int) -> List[ScoredEvent]:
        # sorted() is stable, ties keep feed order
        return sorted(scored.values(), key=lambda e: e.score, reverse=True)[:limit]

    def get_threat_level(self, score: int) -> str:
        if score >= self.HIGH_THRESHOLD:
            return "high"
        elif score >= self.MEDIUM_THRESHOLD:
            return "medium"
        else:
            return "low"
