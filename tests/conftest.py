"""Shared fixtures: QuakeML payloads, fake stores and a mocked upstream."""

from pathlib import Path
from typing import List

import fakeredis
import httpx
import pytest

from ingv_quake_gateway.monitoring import get_monitor

FIXTURES = Path(__file__).resolve().parent / "fixtures" / "quakeml"


@pytest.fixture(autouse=True)
def reset_monitor():
    """Start every test from a clean metrics baseline."""
    get_monitor().reset_metrics()
    yield
    get_monitor().reset_metrics()


@pytest.fixture
def quakeml_text() -> str:
    return (FIXTURES / "one_event.xml").read_text(encoding="utf-8")


@pytest.fixture
def fake_store():
    """Isolated in-memory Redis."""
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


class UpstreamStub:
    """Records requests made against a canned event service response."""

    def __init__(self, body: str = "", status_code: int = 200):
        self.body = body
        self.status_code = status_code
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(
            self.status_code,
            text=self.body,
            headers={"Content-Type": "application/xml"},
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def calls(self) -> int:
        return len(self.requests)


@pytest.fixture
def upstream(quakeml_text) -> UpstreamStub:
    return UpstreamStub(quakeml_text)


@pytest.fixture
def make_upstream():
    """Factory for stubs with a custom body or status code."""
    return UpstreamStub
