"""Upstream event query resolver.

Turns a set of optional FDSN filters into a list of :class:`QuakeEvent`:

1. :func:`build_params` keeps only truthy filters, so absent values, empty
   strings and zeros are never sent upstream.
2. ``GET`` the event endpoint with those parameters and read the body as text.
3. Parse the QuakeML body with :func:`~ingv_quake_gateway.xml_tree.parse_xml`.
4. Extract events with :func:`~ingv_quake_gateway.extraction.extract_events`.

When both ``starttime`` and ``endtime`` are present the whole pipeline is
routed through the :class:`~ingv_quake_gateway.cache.ResponseCache`;
otherwise it runs uncached on every call. The pipeline is stateless and does
not retry.

Example::

    async with httpx.AsyncClient() as client:
        resolver = QuakeResolver(client, cache=None)
        events = await resolver.resolve(
            EventQuery(starttime="2023-01-01T00:00:00", endtime="2023-01-02T00:00:00")
        )
"""

from __future__ import annotations

import logging
import time
import xml.etree.ElementTree as ET
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Optional, Union
from urllib.parse import urlencode

import httpx

from .cache import ResponseCache
from .config import DEFAULT_UPSTREAM_URL
from .extraction import extract_events
from .models import QuakeEvent
from .monitoring import get_monitor
from .xml_tree import parse_xml

logger = logging.getLogger(__name__)

QUERY_PARAMETERS = (
    "starttime",
    "endtime",
    "maxmag",
    "minmag",
    "maxdepth",
    "minlat",
    "maxlat",
    "minlon",
    "maxlon",
    "minversion",
    "format",
    "limit",
)


class UpstreamPayloadError(ValueError):
    """The event service answered with a body that is not well-formed XML."""


@dataclass(frozen=True)
class EventQuery:
    """Immutable set of optional filters forwarded to the event service."""

    starttime: Optional[str] = None
    endtime: Optional[str] = None
    maxmag: Optional[float] = None
    minmag: Optional[float] = None
    maxdepth: Optional[float] = None
    minlat: Optional[float] = None
    maxlat: Optional[float] = None
    minlon: Optional[float] = None
    maxlon: Optional[float] = None
    minversion: Optional[int] = None
    format: Optional[str] = None
    limit: Optional[int] = None

    def to_args(self) -> Dict[str, Any]:
        return asdict(self)


QueryArgs = Union[EventQuery, Mapping[str, Any]]


def _as_mapping(args: QueryArgs) -> Mapping[str, Any]:
    return args.to_args() if isinstance(args, EventQuery) else args


def build_params(args: QueryArgs) -> Dict[str, Any]:
    """Keep the filters whose value is truthy, in argument order.

    Example:
        >>> build_params({"starttime": "2020-01-01", "endtime": "", "maxmag": 0})
        {'starttime': '2020-01-01'}
    """
    return {name: value for name, value in _as_mapping(args).items() if value}


def cache_key(args: QueryArgs, prefix: str = "") -> Optional[str]:
    """Derive the cache key for a query, or ``None`` when it has no time range.

    The key is ``prefix + starttime + endtime``. Any other truthy filter is
    appended as an encoded query string so differently filtered queries over
    the same window do not share an entry.
    """
    params = build_params(args)
    starttime = params.pop("starttime", None)
    endtime = params.pop("endtime", None)
    if not (starttime and endtime):
        return None
    key = f"{prefix}{starttime}{endtime}"
    if params:
        key += "?" + urlencode(params)
    return key


def rebuild_events(snapshot: List[Dict[str, Any]]) -> List[QuakeEvent]:
    """Rebuild events from a cached snapshot.

    Raises:
        TypeError: When the snapshot is not a list of event dictionaries.
    """
    if not isinstance(snapshot, list):
        raise TypeError(f"Expected a list of events, got {type(snapshot).__name__}")
    return [QuakeEvent.from_dict(item) for item in snapshot]


class QuakeResolver:
    """Fetch, parse and normalize events from the FDSN event service.

    Args:
        http_client: Shared ``httpx.AsyncClient`` (owned by the application).
        cache: Response cache, or ``None`` to always query upstream.
        endpoint: Event query URL.
        cache_prefix: Prefix for cache keys.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        cache: Optional[ResponseCache] = None,
        endpoint: str = DEFAULT_UPSTREAM_URL,
        cache_prefix: str = "quake:",
    ) -> None:
        self.http_client = http_client
        self.cache = cache
        self.endpoint = endpoint
        self.cache_prefix = cache_prefix

    async def resolve(self, args: QueryArgs) -> List[QuakeEvent]:
        """Return the events matching ``args``, from cache when possible."""
        params = build_params(args)
        key = cache_key(args, self.cache_prefix) if self.cache is not None else None

        async def compute() -> List[Dict[str, Any]]:
            events = await self.fetch_events(params)
            return [event.to_dict() for event in events]

        if key is None:
            return rebuild_events(await compute())
        return await self.cache.fetch_with_cache(key, compute, decode=rebuild_events)

    async def fetch_events(self, params: Dict[str, Any]) -> List[QuakeEvent]:
        """Run the uncached fetch-parse-extract pipeline.

        Raises:
            httpx.HTTPError: Transport failures and non-2xx responses.
            UpstreamPayloadError: When the body is not well-formed XML.
        """
        body = await self._fetch_text(params)
        if body is None:
            return []
        try:
            document = parse_xml(body)
        except ET.ParseError as e:
            raise UpstreamPayloadError(f"Malformed XML from event service: {e}") from e
        return extract_events(document)

    async def _fetch_text(self, params: Dict[str, Any]) -> Optional[str]:
        monitor = get_monitor()
        start = time.perf_counter()
        try:
            response = await self.http_client.get(self.endpoint, params=params)
            response.raise_for_status()
        except httpx.HTTPError as e:
            monitor.record_upstream_request(time.perf_counter() - start, success=False)
            logger.error(f"Event service request failed: {e}")
            raise
        monitor.record_upstream_request(time.perf_counter() - start)

        # FDSN services answer 204 when no event matches
        if response.status_code == 204:
            logger.info(f"No events for {params}")
            return None
        return response.text
