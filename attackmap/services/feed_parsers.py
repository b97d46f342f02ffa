import csv
import ipaddress
import re
from typing import Callable, Dict, List, Optional

from ..config.feeds import FeedConfig, FeedFormat
from ..models.threat_event import RawEntry

# Leading dotted quad, CIDR suffix or trailing comment is ignored
LEADING_IP_RE = re.compile(r"^(\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})")
IP_RE = re.compile(r"^\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}$")


def valid_ipv4(candidate: str) -> Optional[str]:
    """Return the address when it is a valid dotted-quad IPv4, else None."""
    if not IP_RE.match(candidate):
        return None
    try:
        ipaddress.IPv4Address(candidate)
        return candidate
    except ValueError:
        return None


def _parse_line_list(raw_text: str, feed: FeedConfig, comment: str) -> List[RawEntry]:
    entries: List[RawEntry] = []

    for line in raw_text.splitlines():
        trimmed = line.strip()

        # Skip comments and empty lines
        if not trimmed or trimmed.startswith(comment):
            continue

        m = LEADING_IP_RE.match(trimmed)
        if not m:
            continue

        ip = valid_ipv4(m.group(1))
        if ip:
            entries.append(RawEntry(ip=ip, source=feed.name, reason=feed.reason))

    return entries


def parse_hash_list(raw_text: str, feed: FeedConfig) -> List[RawEntry]:
    """FireHOL / Feodo style lists, '#' comments"""
    return _parse_line_list(raw_text, feed, "#")


def parse_semicolon_list(raw_text: str, feed: FeedConfig) -> List[RawEntry]:
    """Spamhaus DROP style lists, e.g. '1.10.16.0/20 ; SBL256894'"""
    return _parse_line_list(raw_text, feed, ";")


def parse_csv(raw_text: str, feed: FeedConfig) -> List[RawEntry]:
    entries: List[RawEntry] = []
    lines = [line for line in raw_text.splitlines() if line.strip() and not line.strip().startswith("#")]

    for row in csv.reader(lines):
        if len(row) <= feed.csv_column:
            continue

        ip = valid_ipv4(row[feed.csv_column].strip().strip('"').strip())
        if ip:
            entries.append(RawEntry(ip=ip, source=feed.name, reason=feed.reason))

    return entries


PARSERS: Dict[FeedFormat, Callable[[str, FeedConfig], List[RawEntry]]] = {
    FeedFormat.HASH_LIST: parse_hash_list,
    FeedFormat.SEMICOLON_LIST: parse_semicolon_list,
    FeedFormat.CSV: parse_csv,
}


def parse_feed(raw_text: str, feed: FeedConfig) -> List[RawEntry]:
    return PARSERS[feed.format](raw_text, feed)
