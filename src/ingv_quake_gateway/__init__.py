"""INGV Quake Gateway
==================

GraphQL gateway over the INGV FDSN event web service. Queries are forwarded
upstream, the QuakeML answer is normalized into typed events, and results for
time-ranged queries are cached for a short TTL in Redis.

Key capabilities
----------------
- ``events`` GraphQL query with the FDSN filters (time window, magnitude,
  depth, bounding box, version, format, limit).
- QuakeML to nested-mapping conversion with defensive, per-field extraction
  (missing data becomes ``null`` instead of failing the event).
- Cache-or-compute wrapper with fire-and-forget writes and fail-open reads
  (Redis, fakeredis or an in-process fallback).
- In-process performance monitor shared by HTTP, GraphQL and cache layers.

Minimal quick start
-------------------
>>> from ingv_quake_gateway.resolver import build_params
>>> build_params({"starttime": "2020-01-01", "endtime": "", "maxmag": 0})
{'starttime': '2020-01-01'}

FastAPI application instance (for ASGI servers like uvicorn):
>>> from ingv_quake_gateway.app import app  # noqa: F401
"""

__version__ = "0.1.0"

from .cache import ResponseCache
from .models import QuakeEvent
from .resolver import EventQuery, QuakeResolver, build_params

__all__ = [
    "EventQuery",
    "QuakeEvent",
    "QuakeResolver",
    "ResponseCache",
    "build_params",
]
