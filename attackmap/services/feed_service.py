import aiohttp
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from ..config.feeds import FeedCatalog, FeedConfig
from ..config.settings import Settings
from ..models.threat_event import DataSource, RawEntry
from .feed_parsers import parse_feed

logger = logging.getLogger(__name__)


class FeedService:
    """
    Fetches every configured threat feed and parses it into raw entries.
    A failing feed only costs its own entries.
    """

    def __init__(self, settings: Settings, session: Optional[aiohttp.ClientSession] = None):
        self.settings = settings
        self.session = session
        # url -> {'data': body, 'timestamp': fetched_at}
        self.response_cache: Dict[str, Dict] = {}

    async def get_session(self) -> aiohttp.ClientSession:
        if not self.session:
            self.session = aiohttp.ClientSession()
        return self.session

    async def fetch_threat_feeds(self) -> List[RawEntry]:
        logger.info("Fetching threat feeds...")

        tasks = []
        for feed in FeedCatalog.FEEDS:
            url = feed.source_url(self.settings)
            if url:
                tasks.append(self._fetch_feed(feed, url))
            else:
                logger.warning(f"{feed.url_setting.upper()} not set - skipping {feed.name} feed")

        if not tasks:
            logger.warning("No feed URLs configured (no FEED_* env vars found)")
            return []

        results = await asyncio.gather(*tasks, return_exceptions=True)

        all_entries: List[RawEntry] = []
        for result in results:
            if isinstance(result, BaseException):
                logger.error(f"Feed task failed: {result}")
                continue
            all_entries.extend(result)

        logger.info(f"Fetched {len(all_entries)} total entries from threat feeds")
        return all_entries

    async def _fetch_feed(self, feed: FeedConfig, url: str) -> List[RawEntry]:
        text = await self._get_feed_text(feed, url)
        if text is None:
            return []

        entries = parse_feed(text, feed)
        logger.debug(f"Parsed {len(entries)} entries from {feed.name}")
        return entries

    async def _get_feed_text(self, feed: FeedConfig, url: str) -> Optional[str]:
        if self._is_cached_and_fresh(url):
            logger.debug(f"Using cached response for {feed.name}")
            return self.response_cache[url]['data']

        try:
            session = await self.get_session()
            timeout = aiohttp.ClientTimeout(total=self.settings.feed_timeout)
            async with session.get(url, timeout=timeout) as response:
                if not 200 <= response.status < 300:
                    logger.error(f"Failed to fetch {feed.name}: {response.status}")
                    return None
                text = await response.text()

        except asyncio.TimeoutError:
            logger.error(f"Timeout fetching {feed.name}")
            return None
        except Exception as e:
            logger.error(f"Error fetching {feed.name}: {e}")
            return None

        self.response_cache[url] = {
            'data': text,
            'timestamp': datetime.now()
        }
        return text

    def _is_cached_and_fresh(self, url: str) -> bool:
        if url not in self.response_cache:
            return False

        cached_time = self.response_cache[url]['timestamp']
        ttl = timedelta(seconds=self.settings.feed_cache_ttl)

        return datetime.now() - cached_time < ttl

    def get_data_sources(self) -> List[DataSource]:
        return [
            DataSource(
                id=feed.id,
                name=feed.name,
                description=feed.description,
                url=feed.public_url,
                status="active" if feed.is_active(self.settings) else "inactive",
                type=feed.type.value,
            )
            for feed in FeedCatalog.FEEDS
        ]

    async def close(self):
        if self.session:
            await self.session.close()
            self.session = None
