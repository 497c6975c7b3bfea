"""Tests for the GraphQL schema and its ``events`` resolver."""

from datetime import datetime, timezone

import httpx
import pytest

from ingv_quake_gateway.cache import ResponseCache
from ingv_quake_gateway.graphql_schema import default_time_window, schema
from ingv_quake_gateway.monitoring import get_monitor
from ingv_quake_gateway.resolver import QuakeResolver

EVENTS_QUERY = """
query Events($start: String, $end: String) {
    events(starttime: $start, endtime: $end) {
        publicID
        description
        magnitude { value uncertainty type }
        origin { latitude longitude time uncertainty depth { value uncertainty } }
        creationInfo { agencyID author creationTime }
    }
}
"""

DAY = {"start": "2023-01-01T00:00:00", "end": "2023-01-02T00:00:00"}


def context_for(stub, cache=None):
    client = httpx.AsyncClient(transport=stub.transport)
    return {"resolver": QuakeResolver(client, cache=cache, endpoint="http://upstream.test/q")}


@pytest.mark.asyncio
async def test_events_query_end_to_end(upstream, fake_store):
    cache = ResponseCache(fake_store)
    context = context_for(upstream, cache)

    first = await schema.execute(EVENTS_QUERY, variable_values=DAY, context_value=context)
    await cache.flush_pending()
    second = await schema.execute(EVENTS_QUERY, variable_values=DAY, context_value=context)

    assert first.errors is None
    assert first.data == second.data
    assert upstream.calls == 1
    assert first.data["events"] == [
        {
            "publicID": "smi:webservices.ingv.it/fdsnws/event/1/query?eventId=33725461",
            "description": "Costa Marchigiana Anconetana",
            "magnitude": {"value": 3.2, "uncertainty": 0.1, "type": "ML"},
            "origin": {
                "latitude": 42.1,
                "longitude": 13.4,
                "time": "2023-01-01T12:30:00.000000",
                "uncertainty": 0.5,
                "depth": {"value": 10.0, "uncertainty": 2.0},
            },
            "creationInfo": {
                "agencyID": "XX",
                "author": "tester",
                "creationTime": "2023-01-01T12:35:00",
            },
        }
    ]


@pytest.mark.asyncio
async def test_missing_fields_resolve_to_null(make_upstream):
    stub = make_upstream(
        "<q:quakeml xmlns:q='http://quakeml.org/xmlns/quakeml/1.2'><eventParameters><event>"
        "<description><text>Only text</text></description>"
        "</event></eventParameters></q:quakeml>"
    )

    result = await schema.execute(
        EVENTS_QUERY, variable_values=DAY, context_value=context_for(stub)
    )

    assert result.errors is None
    event = result.data["events"][0]
    assert event["description"] == "Only text"
    assert event["magnitude"] == {"value": None, "uncertainty": None, "type": None}
    assert event["origin"]["depth"] == {"value": None, "uncertainty": None}
    assert event["creationInfo"]["agencyID"] is None


@pytest.mark.asyncio
async def test_default_time_window_is_sent_upstream(upstream):
    result = await schema.execute(
        "{ events(minmag: 2.5, limit: 3) { description } }",
        context_value=context_for(upstream),
    )

    assert result.errors is None
    params = dict(upstream.requests[0].url.params)
    assert set(params) == {"starttime", "endtime", "minmag", "limit"}
    assert params["minmag"] == "2.5"
    assert params["limit"] == "3"
    assert params["starttime"] < params["endtime"]


@pytest.mark.asyncio
async def test_zero_valued_arguments_are_not_forwarded(upstream):
    result = await schema.execute(
        '{ events(starttime: "2023-01-01", endtime: "2023-01-02", maxmag: 0, format: "") '
        "{ description } }",
        context_value=context_for(upstream),
    )

    assert result.errors is None
    assert dict(upstream.requests[0].url.params) == {
        "starttime": "2023-01-01",
        "endtime": "2023-01-02",
    }


@pytest.mark.asyncio
async def test_upstream_failure_is_reported_as_graphql_error(make_upstream):
    stub = make_upstream("oops", status_code=500)

    result = await schema.execute(
        EVENTS_QUERY, variable_values=DAY, context_value=context_for(stub)
    )

    assert result.errors
    assert result.data is None
    assert get_monitor().endpoint_metrics["GraphQL events"].error_count == 1


@pytest.mark.asyncio
async def test_malformed_payload_is_reported_as_graphql_error(make_upstream):
    stub = make_upstream("<not-xml")

    result = await schema.execute(
        EVENTS_QUERY, variable_values=DAY, context_value=context_for(stub)
    )

    assert result.errors
    assert "Malformed XML" in result.errors[0].message


@pytest.mark.asyncio
async def test_health_and_cache_metrics_queries():
    get_monitor().record_cache_hit()
    get_monitor().record_cache_miss()

    result = await schema.execute(
        "{ health cacheMetrics "
        "{ cacheHits cacheMisses storeErrors writeFailures hitRatePercent } }"
    )

    assert result.errors is None
    assert result.data["health"] == "OK"
    assert result.data["cacheMetrics"] == {
        "cacheHits": 1,
        "cacheMisses": 1,
        "storeErrors": 0,
        "writeFailures": 0,
        "hitRatePercent": 50.0,
    }


def test_default_time_window_spans_previous_month():
    now = datetime(2024, 3, 31, 8, 15, 0, tzinfo=timezone.utc)

    assert default_time_window(now) == ("2024-02-29T08:15:00", "2024-03-31T08:15:00")


def test_default_time_window_crosses_year_boundary():
    now = datetime(2024, 1, 10, tzinfo=timezone.utc)

    assert default_time_window(now)[0] == "2023-12-10T00:00:00"
