"""Tests for the upstream query resolver."""

import httpx
import pytest

from ingv_quake_gateway.cache import ResponseCache
from ingv_quake_gateway.monitoring import get_monitor
from ingv_quake_gateway.resolver import (
    QUERY_PARAMETERS,
    EventQuery,
    QuakeResolver,
    UpstreamPayloadError,
    build_params,
    cache_key,
    rebuild_events,
)


ENDPOINT = "http://upstream.test/fdsnws/event/1/query"
DAY = EventQuery(starttime="2023-01-01T00:00:00", endtime="2023-01-02T00:00:00")


def make_resolver(stub, cache=None):
    client = httpx.AsyncClient(transport=stub.transport)
    return QuakeResolver(client, cache=cache, endpoint=ENDPOINT)


def test_build_params_drops_falsy_values():
    params = build_params({"starttime": "2020-01-01", "endtime": "", "maxmag": 0})

    assert params == {"starttime": "2020-01-01"}


def test_build_params_from_event_query():
    query = EventQuery(starttime="2020-01-01", minmag=2.5, limit=10, maxdepth=None)

    assert build_params(query) == {"starttime": "2020-01-01", "minmag": 2.5, "limit": 10}


def test_event_query_covers_all_filters():
    assert tuple(EventQuery().to_args()) == QUERY_PARAMETERS


def test_cache_key_requires_both_bounds():
    assert cache_key({"starttime": "2020-01-01"}) is None
    assert cache_key({"starttime": "2020-01-01", "endtime": ""}) is None
    assert cache_key({"endtime": "2020-01-02"}) is None


def test_cache_key_concatenates_time_range():
    assert cache_key(DAY, prefix="quake:") == (
        "quake:2023-01-01T00:00:002023-01-02T00:00:00"
    )


def test_cache_key_distinguishes_other_filters():
    filtered = EventQuery(starttime="a", endtime="b", minmag=3.0, limit=5)

    assert cache_key(filtered) == "ab?minmag=3.0&limit=5"
    assert cache_key(filtered) != cache_key(EventQuery(starttime="a", endtime="b"))


@pytest.mark.asyncio
async def test_outbound_request_carries_only_truthy_params(upstream):
    resolver = make_resolver(upstream)

    await resolver.resolve({"starttime": "2020-01-01", "endtime": "", "maxmag": 0})

    request = upstream.requests[0]
    assert request.method == "GET"
    assert str(request.url).startswith(ENDPOINT)
    assert dict(request.url.params) == {"starttime": "2020-01-01"}


@pytest.mark.asyncio
async def test_end_to_end_with_cache(upstream, fake_store):
    cache = ResponseCache(fake_store, default_ttl=10)
    resolver = make_resolver(upstream, cache=cache)

    first = await resolver.resolve(DAY)
    await cache.flush_pending()
    second = await resolver.resolve(DAY)

    assert len(first) == 1
    event = first[0]
    assert event.magnitude.value == 3.2
    assert event.magnitude.uncertainty == 0.1
    assert event.origin.latitude == 42.1
    assert event.origin.longitude == 13.4
    assert event.origin.depth.value == 10.0
    assert event.origin.depth.uncertainty == 2.0
    assert event.creation_info.agency_id == "XX"
    assert event.creation_info.author == "tester"

    assert second == first
    assert upstream.calls == 1
    assert dict(upstream.requests[0].url.params) == {
        "starttime": "2023-01-01T00:00:00",
        "endtime": "2023-01-02T00:00:00",
    }


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "stored",
    ["null", '{"a": 1}', "[1]", '[{"magnitude": {"scale": "ML"}}]', '"text"'],
)
async def test_wrong_shaped_cache_entry_is_recomputed(upstream, fake_store, stored):
    key = cache_key(DAY, prefix="quake:")
    await fake_store.set(key, stored)
    cache = ResponseCache(fake_store)
    resolver = make_resolver(upstream, cache=cache)

    events = await resolver.resolve(DAY)
    await cache.flush_pending()

    assert upstream.calls == 1
    assert events[0].magnitude.value == 3.2
    assert get_monitor().cache_metrics.misses == 1
    assert await resolver.resolve(DAY) == events
    assert upstream.calls == 1


def test_rebuild_events_rejects_non_list_snapshot():
    with pytest.raises(TypeError):
        rebuild_events({"a": 1})

    assert rebuild_events([]) == []


@pytest.mark.asyncio
async def test_query_without_time_range_is_never_cached(upstream, fake_store):
    cache = ResponseCache(fake_store)
    resolver = make_resolver(upstream, cache=cache)

    await resolver.resolve(EventQuery(minmag=2.0))
    await cache.flush_pending()
    await resolver.resolve(EventQuery(minmag=2.0))

    assert upstream.calls == 2
    assert await fake_store.keys("*") == []


@pytest.mark.asyncio
async def test_resolver_without_cache_always_fetches(upstream):
    resolver = make_resolver(upstream)

    await resolver.resolve(DAY)
    await resolver.resolve(DAY)

    assert upstream.calls == 2


@pytest.mark.asyncio
async def test_non_2xx_propagates_and_is_not_cached(make_upstream, fake_store):
    stub = make_upstream("Service unavailable", status_code=503)
    cache = ResponseCache(fake_store)
    resolver = make_resolver(stub, cache=cache)

    with pytest.raises(httpx.HTTPStatusError):
        await resolver.resolve(DAY)
    await cache.flush_pending()

    assert await fake_store.keys("*") == []
    assert get_monitor().upstream_metrics.failures == 1


@pytest.mark.asyncio
async def test_transport_error_propagates():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    resolver = QuakeResolver(client, endpoint=ENDPOINT)

    with pytest.raises(httpx.ConnectError):
        await resolver.resolve(DAY)


@pytest.mark.asyncio
async def test_malformed_xml_raises_payload_error(make_upstream):
    resolver = make_resolver(make_upstream("<quakeml><eventParameters>"))

    with pytest.raises(UpstreamPayloadError):
        await resolver.resolve(DAY)


@pytest.mark.asyncio
async def test_no_content_yields_empty_list(make_upstream):
    resolver = make_resolver(make_upstream("", status_code=204))

    assert await resolver.resolve(DAY) == []


@pytest.mark.asyncio
async def test_upstream_call_is_timed(upstream):
    resolver = make_resolver(upstream)

    await resolver.resolve(DAY)

    assert get_monitor().upstream_metrics.total_requests == 1
    assert get_monitor().upstream_metrics.failures == 0
