import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis

from attackmap.config.feeds import FeedCatalog
from attackmap.services.cache_service import CacheService
from attackmap.services.cache_state import ProcessCacheState

from fakes import make_settings


@pytest_asyncio.fixture
async def fake_redis():
    client = FakeRedis(decode_responses=True)
    try:
        yield client
    finally:
        await client.flushall()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def cache_state():
    return ProcessCacheState()


@pytest.fixture
def cache_service(settings, fake_redis):
    return CacheService(settings, fake_redis)


@pytest.fixture
def firehol_feed():
    return FeedCatalog.get_feed("firehol-l1")


@pytest.fixture
def spamhaus_feed():
    return FeedCatalog.get_feed("spamhaus-drop")


@pytest.fixture
def sslbl_feed():
    return FeedCatalog.get_feed("abusech-sslbl")
