"""GraphQL schema for the INGV quake gateway.

Overview
========
One query field, ``events``, forwards its optional filters to the FDSN event
service and returns normalized events. The time window defaults to the last
calendar month when ``starttime`` / ``endtime`` are omitted; the defaults are
computed per request.

Example Queries (GraphiQL / curl)
---------------------------------
Events for one day::

        query {
            events(starttime: "2023-01-01T00:00:00", endtime: "2023-01-02T00:00:00", minmag: 2.5) {
                publicID
                description
                magnitude { value uncertainty type }
                origin { latitude longitude time uncertainty depth { value uncertainty } }
                creationInfo { agencyID author creationTime }
            }
        }

curl usage (JSON body)::

        curl -X POST http://localhost:8080/graphql \
                 -H "Content-Type: application/json" \
                 -d '{"query": "{ events(limit: 5) { description magnitude { value } } }"}'

Context
-------
Resolvers read the process-scoped :class:`~ingv_quake_gateway.resolver.QuakeResolver`
from ``info.context["resolver"]``; :func:`create_graphql_router` wires it from
``request.app.state``. Upstream and XML errors surface in the response
``errors`` array.

Performance & Monitoring
------------------------
Each resolver records its execution time in the shared performance monitor
under ``GraphQL <operation>``.
"""

from __future__ import annotations

import calendar
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import strawberry
from fastapi import Request
from strawberry.extensions import QueryDepthLimiter
from strawberry.fastapi import GraphQLRouter
from strawberry.types import Info

from .models import QuakeEvent
from .monitoring import get_monitor
from .resolver import EventQuery, QuakeResolver

TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"


@strawberry.type
class Magnitude:
    """Preferred magnitude with its uncertainty."""

    value: Optional[float] = None
    uncertainty: Optional[float] = None
    type: Optional[str] = None


@strawberry.type
class Depth:
    value: Optional[float] = None
    uncertainty: Optional[float] = None


@strawberry.type
class Origin:
    """Hypocenter location, origin time and depth."""

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    time: Optional[str] = None
    uncertainty: Optional[float] = None
    depth: Optional[Depth] = None


@strawberry.type
class CreationInfo:
    agency_id: Optional[str] = strawberry.field(name="agencyID", default=None)
    author: Optional[str] = None
    creation_time: Optional[str] = None


@strawberry.type
class Quake:
    """A seismic event. Fields that could not be read upstream are null."""

    public_id: Optional[str] = strawberry.field(name="publicID", default=None)
    description: Optional[str] = None
    magnitude: Optional[Magnitude] = None
    origin: Optional[Origin] = None
    creation_info: Optional[CreationInfo] = None

    @classmethod
    def from_model(cls, event: QuakeEvent) -> "Quake":
        """Convert from model to GraphQL type."""
        origin = event.origin
        return cls(
            public_id=event.public_id,
            description=event.description,
            magnitude=Magnitude(
                value=event.magnitude.value,
                uncertainty=event.magnitude.uncertainty,
                type=event.magnitude.type,
            ),
            origin=Origin(
                latitude=origin.latitude,
                longitude=origin.longitude,
                time=origin.time,
                uncertainty=origin.uncertainty,
                depth=Depth(
                    value=origin.depth.value, uncertainty=origin.depth.uncertainty
                ),
            ),
            creation_info=CreationInfo(
                agency_id=event.creation_info.agency_id,
                author=event.creation_info.author,
                creation_time=event.creation_info.creation_time,
            ),
        )


@strawberry.type
class CacheMetrics:
    """Response cache counters from the shared monitor."""

    cache_hits: int
    cache_misses: int
    store_errors: int
    write_failures: int
    hit_rate_percent: float


def _one_month_before(moment: datetime) -> datetime:
    if moment.month == 1:
        year, month = moment.year - 1, 12
    else:
        year, month = moment.year, moment.month - 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def default_time_window(now: Optional[datetime] = None) -> Tuple[str, str]:
    """Return ``(starttime, endtime)`` covering the month before ``now`` (UTC)."""
    now = now or datetime.now(timezone.utc)
    return _one_month_before(now).strftime(TIME_FORMAT), now.strftime(TIME_FORMAT)


def _record_graphql_metrics(operation_name: str, start_time: float, status: int = 200):
    """Record execution time for an operation in shared performance monitor."""
    get_monitor().record_endpoint_request(
        f"GraphQL {operation_name}", time.time() - start_time, status
    )


@strawberry.type
class Query:
    """Root query type."""

    @strawberry.field
    async def events(
        self,
        info: Info,
        starttime: Optional[str] = None,
        endtime: Optional[str] = None,
        maxmag: Optional[float] = None,
        minmag: Optional[float] = None,
        maxdepth: Optional[float] = None,
        minlat: Optional[float] = None,
        maxlat: Optional[float] = None,
        minlon: Optional[float] = None,
        maxlon: Optional[float] = None,
        minversion: Optional[int] = None,
        format: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Quake]:
        """Query the INGV event service (time window defaults to the last month)."""
        start_time = time.time()
        default_start, default_end = default_time_window()
        query = EventQuery(
            starttime=starttime or default_start,
            endtime=endtime or default_end,
            maxmag=maxmag,
            minmag=minmag,
            maxdepth=maxdepth,
            minlat=minlat,
            maxlat=maxlat,
            minlon=minlon,
            maxlon=maxlon,
            minversion=minversion,
            format=format,
            limit=limit,
        )
        resolver: QuakeResolver = info.context["resolver"]
        try:
            events = await resolver.resolve(query)
        except Exception:
            _record_graphql_metrics("events", start_time, 500)
            raise

        _record_graphql_metrics("events", start_time)
        return [Quake.from_model(event) for event in events]

    @strawberry.field
    async def health(self) -> str:
        """Simple liveness probe returning "OK" when service is responsive."""
        start_time = time.time()
        _record_graphql_metrics("health", start_time)
        return "OK"

    @strawberry.field
    async def cache_metrics(self) -> CacheMetrics:
        """Expose current cache metrics snapshot from monitor."""
        start_time = time.time()
        usage = get_monitor().get_cache_analytics()
        result = CacheMetrics(
            cache_hits=usage["usage"]["cache_hits"],
            cache_misses=usage["usage"]["cache_misses"],
            store_errors=usage["usage"]["store_errors"],
            write_failures=usage["usage"]["write_failures"],
            hit_rate_percent=usage["performance"]["hit_rate_percent"],
        )
        _record_graphql_metrics("cache_metrics", start_time)
        return result


schema = strawberry.Schema(
    query=Query,
    extensions=[
        QueryDepthLimiter(max_depth=10),
    ],
)


async def get_context(request: Request) -> Dict[str, Any]:
    """Expose the application's resolver to GraphQL resolvers."""
    return {"resolver": request.app.state.resolver}


def create_graphql_router(path: str = "/graphql") -> GraphQLRouter:
    """GraphQL router with the GraphiQL interface enabled."""
    return GraphQLRouter(
        schema, path=path, graphql_ide="graphiql", context_getter=get_context
    )
