import pytest

from attackmap.models.threat_event import GeoLocation
from attackmap.services.geo_intelligence_service import GeointelligenceServices

from fakes import GEO_URL, FakeResponse, FakeSession, geo_handler, make_settings

KNOWN = {
    "1.1.1.1": (-33.49, 143.21, "Australia", "Sydney"),
    "8.8.8.8": (37.75, -97.82, "United States", None),
}


def _service(settings, cache_service, cache_state, session):
    return GeointelligenceServices(settings, cache_service, cache_state, session=session)


@pytest.mark.asyncio
async def test_unresolved_ips_are_absent(settings, cache_service, cache_state):
    session = FakeSession(post_handler=geo_handler(KNOWN))
    service = _service(settings, cache_service, cache_state, session)

    results = await service.resolve_batch(["1.1.1.1", "10.0.0.1", "8.8.8.8"])

    assert set(results) == {"1.1.1.1", "8.8.8.8"}
    assert results["1.1.1.1"].city == "Sydney"
    assert results["8.8.8.8"].country == "United States"
    assert session.calls == [("POST", GEO_URL, [{"query": "1.1.1.1"}, {"query": "10.0.0.1"}, {"query": "8.8.8.8"}])]


@pytest.mark.asyncio
async def test_fresh_results_are_written_to_both_tiers(settings, cache_service, cache_state, fake_redis):
    service = _service(settings, cache_service, cache_state, FakeSession(post_handler=geo_handler(KNOWN)))

    await service.resolve_batch(["1.1.1.1"])

    assert "1.1.1.1" in cache_state.geo_cache
    assert await fake_redis.get("ddos:geo:1.1.1.1") is not None
    assert await fake_redis.get("ddos:geo:10.0.0.1") is None


@pytest.mark.asyncio
async def test_redis_hits_skip_the_provider(settings, cache_service, cache_state):
    geo = GeoLocation(latitude=1.0, longitude=2.0, country="Nowhere")
    await cache_service.set_geo_batch({"1.1.1.1": geo})
    session = FakeSession(post_handler=geo_handler(KNOWN))
    service = _service(settings, cache_service, cache_state, session)

    results = await service.resolve_batch(["1.1.1.1"])

    assert results == {"1.1.1.1": geo}
    assert session.calls == []
    assert cache_state.geo_cache["1.1.1.1"] == geo


@pytest.mark.asyncio
async def test_local_mirror_is_used_when_redis_misses(settings, cache_service, cache_state):
    geo = GeoLocation(latitude=1.0, longitude=2.0, country="Nowhere")
    cache_state.geo_cache["8.8.8.8"] = geo
    session = FakeSession(post_handler=geo_handler(KNOWN))
    service = _service(settings, cache_service, cache_state, session)

    results = await service.resolve_batch(["8.8.8.8"])

    assert results == {"8.8.8.8": geo}
    assert session.calls == []


@pytest.mark.asyncio
async def test_lookups_are_split_into_batches(cache_service, cache_state):
    settings = make_settings()
    ips = [f"10.0.{i // 256}.{i % 256}" for i in range(250)]
    session = FakeSession(post_handler=geo_handler({ip: (0.0, 0.0, "X", None) for ip in ips}))
    service = _service(settings, cache_service, cache_state, session)

    results = await service.resolve_batch(ips)

    assert len(results) == 250
    assert [len(call[2]) for call in session.calls] == [100, 100, 50]


@pytest.mark.asyncio
async def test_failed_batch_is_skipped(cache_service, cache_state):
    settings = make_settings(geo_batch_size=1)
    responses = iter([FakeResponse(status=429), None])

    def handler(body):
        response = next(responses)
        return response or geo_handler(KNOWN)(body)

    session = FakeSession(post_handler=handler)
    service = _service(settings, cache_service, cache_state, session)

    results = await service.resolve_batch(["1.1.1.1", "8.8.8.8"])

    assert set(results) == {"8.8.8.8"}


@pytest.mark.asyncio
async def test_unexpected_body_is_ignored(settings, cache_service, cache_state):
    session = FakeSession(post_handler=lambda body: FakeResponse(json_data={"message": "invalid query"}))
    service = _service(settings, cache_service, cache_state, session)

    assert await service.resolve_batch(["1.1.1.1"]) == {}


@pytest.mark.asyncio
async def test_without_endpoint_only_caches_are_used(cache_service, cache_state):
    settings = make_settings(ip_api_batch_url=None)
    cache_state.geo_cache["1.1.1.1"] = GeoLocation(latitude=1.0, longitude=2.0, country="X")
    session = FakeSession(post_handler=geo_handler(KNOWN))
    service = _service(settings, cache_service, cache_state, session)

    results = await service.resolve_batch(["1.1.1.1", "8.8.8.8"])

    assert set(results) == {"1.1.1.1"}
    assert session.calls == []


@pytest.mark.asyncio
async def test_geolocate_single_ip(settings, cache_service, cache_state):
    service = _service(settings, cache_service, cache_state, FakeSession(post_handler=geo_handler(KNOWN)))

    assert (await service.geolocate("8.8.8.8")).latitude == 37.75
    assert await service.geolocate("10.0.0.1") is None
