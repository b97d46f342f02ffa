from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from .settings import Settings


class FeedFormat(Enum):
    HASH_LIST = "hash_list"            # one IP/CIDR per line, '#' comments
    SEMICOLON_LIST = "semicolon_list"  # Spamhaus style, ';' comments
    CSV = "csv"                        # comma separated, IP in a fixed column


class FeedType(Enum):
    THREAT_INTEL = "threat-intel"
    HONEYPOT = "honeypot"
    BLOCKLIST = "blocklist"


@dataclass(frozen=True)
class FeedConfig:
    id: str
    name: str                 # canonical source name stamped on every entry
    description: str
    format: FeedFormat
    reason: str
    url_setting: str          # Settings field that holds the feed URL
    type: FeedType = FeedType.BLOCKLIST
    public_url: str = "#"
    csv_column: int = 3

    def source_url(self, settings: Settings) -> Optional[str]:
        url = getattr(settings, self.url_setting, None)
        if url and url.strip():
            return url.strip()
        return None

    def is_active(self, settings: Settings) -> bool:
        return self.source_url(settings) is not None


class FeedCatalog:
    FEEDS: List[FeedConfig] = [
        FeedConfig(
            id="firehol-l1",
            name="FireHOL-L1",
            description="FireHOL level 1: attacks, malware and botnets seen in the last 48h",
            format=FeedFormat.HASH_LIST,
            reason="botnet/malware/scanner",
            url_setting="feed_firehol_l1",
            public_url="https://iplists.firehol.org/",
        ),
        FeedConfig(
            id="firehol-l2",
            name="FireHOL-L2",
            description="FireHOL level 2: attacks and abuse tracked over the last 48h",
            format=FeedFormat.HASH_LIST,
            reason="botnet/malware/scanner",
            url_setting="feed_firehol_l2",
            public_url="https://iplists.firehol.org/",
        ),
        FeedConfig(
            id="spamhaus-drop",
            name="Spamhaus-DROP",
            description="Spamhaus Don't Route Or Peer list of hijacked netblocks",
            format=FeedFormat.SEMICOLON_LIST,
            reason="spam/malicious hosting",
            url_setting="feed_spamhaus_drop",
            public_url="https://www.spamhaus.org/drop/",
        ),
        FeedConfig(
            id="spamhaus-edrop",
            name="Spamhaus-eDROP",
            description="Spamhaus extended DROP list",
            format=FeedFormat.SEMICOLON_LIST,
            reason="spam/malicious hosting",
            url_setting="feed_spamhaus_edrop",
            public_url="https://www.spamhaus.org/drop/",
        ),
        FeedConfig(
            id="abusech-feodo",
            name="Abuse.ch-Feodo",
            description="Feodo Tracker botnet command and control servers",
            format=FeedFormat.HASH_LIST,
            reason="C2/botnet",
            url_setting="feed_abusech_feodo",
            type=FeedType.THREAT_INTEL,
            public_url="https://feodotracker.abuse.ch/",
        ),
        FeedConfig(
            id="abusech-sslbl",
            name="Abuse.ch-SSLBL",
            description="SSL Blacklist of botnet C2 servers identified by certificate",
            format=FeedFormat.CSV,
            reason="C2/malware",
            url_setting="feed_abusech_sslbl",
            type=FeedType.THREAT_INTEL,
            public_url="https://sslbl.abuse.ch/",
        ),
        FeedConfig(
            id="blocklist-de",
            name="Blocklist.de",
            description="Hosts reported for attacks on SSH, mail and web services",
            format=FeedFormat.HASH_LIST,
            reason="abuse/bruteforce",
            url_setting="feed_blocklist_de",
            type=FeedType.HONEYPOT,
            public_url="https://www.blocklist.de/",
        ),
        FeedConfig(
            id="cinsscore",
            name="CINS-Army",
            description="CINS Army list of poorly rated IPs from Sentinel IPS",
            format=FeedFormat.HASH_LIST,
            reason="scanner",
            url_setting="feed_cinsscore",
            type=FeedType.HONEYPOT,
            public_url="https://cinsscore.com/",
        ),
        FeedConfig(
            id="emerging-threats",
            name="EmergingThreats",
            description="Emerging Threats compromised hosts list",
            format=FeedFormat.HASH_LIST,
            reason="malware/compromised host",
            url_setting="feed_emerging_threats",
            type=FeedType.THREAT_INTEL,
            public_url="https://rules.emergingthreats.net/",
        ),
        FeedConfig(
            id="bruteforceblocker",
            name="BruteForceBlocker",
            description="SSH brute force sources seen by BruteForceBlocker",
            format=FeedFormat.HASH_LIST,
            reason="scanner/bruteforce",
            url_setting="feed_bruteforceblocker",
            type=FeedType.HONEYPOT,
            public_url="https://danger.rulez.sk/index.php/bruteforceblocker/",
        ),
    ]

    @classmethod
    def get_feed(cls, feed_id: str) -> Optional[FeedConfig]:
        for feed in cls.FEEDS:
            if feed.id == feed_id:
                return feed
        return None
