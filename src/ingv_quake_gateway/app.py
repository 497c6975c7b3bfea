"""FastAPI application exposing the INGV quake GraphQL gateway.

Quick start (run the server)::

    uvicorn ingv_quake_gateway.app:app --reload

Endpoints:

    POST /graphql              GraphQL queries (``events``, ``health``, ``cacheMetrics``)
    GET  /graphql              GraphiQL interactive explorer
    GET  /health               Basic health probe
    GET  /metrics/performance  Cache, upstream and endpoint metrics
    GET  /metrics/cache        Cache analytics and recommendations
    GET  /metrics/system       Process metrics (psutil when installed)
    POST /metrics/reset        Reset all metrics

Example::

    curl -X POST http://localhost:8080/graphql \
         -H "Content-Type: application/json" \
         -d '{"query": "{ events(starttime: \\"2023-01-01T00:00:00\\", endtime: \\"2023-01-02T00:00:00\\") { description magnitude { value } } }"}'

Lifecycle:
    The upstream ``httpx.AsyncClient``, the cache store and the
    :class:`~ingv_quake_gateway.resolver.QuakeResolver` are created in the
    lifespan handler and kept on ``app.state``. Shutdown waits for pending
    cache writes before closing the store.

Security (not implemented here):
    * Authentication / authorization
    * Rate limiting
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import __version__
from .cache import ResponseCache, open_store
from .config import GatewayConfig
from .graphql_schema import create_graphql_router
from .monitoring import get_monitor
from .resolver import QuakeResolver

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[GatewayConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the gateway application.

    Args:
        config: Settings; read from the environment when omitted.
        transport: Optional ``httpx`` transport for the upstream client
            (tests pass an ``httpx.MockTransport``).
    """
    config = config or GatewayConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(config.http_timeout), transport=transport
        )
        cache: Optional[ResponseCache] = None
        if config.cache_enabled:
            store = await open_store(config)
            cache = ResponseCache(store, default_ttl=config.cache_ttl)
        else:
            logger.info("Response cache disabled")

        app.state.cache = cache
        app.state.resolver = QuakeResolver(
            http_client,
            cache=cache,
            endpoint=config.upstream_url,
            cache_prefix=config.redis_prefix,
        )
        logger.info(f"Gateway ready, upstream {config.upstream_url}")
        try:
            yield
        finally:
            if cache is not None:
                await cache.aclose()
            await http_client.aclose()
            logger.info("Gateway stopped")

    app = FastAPI(
        title="INGV Quake Gateway",
        version=__version__,
        description="GraphQL gateway over the INGV FDSN event web service",
        lifespan=lifespan,
    )
    app.state.config = config

    app.include_router(create_graphql_router(config.graphql_path), tags=["GraphQL"])

    @app.middleware("http")
    async def monitor_requests(request: Request, call_next):
        """Record request latency and add timing headers."""
        start_time = time.time()
        response = await call_next(request)
        response_time = time.time() - start_time

        endpoint = f"{request.method} {request.url.path}"
        get_monitor().record_endpoint_request(
            endpoint, response_time, response.status_code
        )

        response.headers["X-Response-Time"] = f"{response_time:.3f}s"
        response.headers["X-API-Version"] = __version__
        return response

    @app.get("/health")
    def health(request: Request) -> Dict[str, Any]:
        """Health check endpoint."""
        cache = getattr(request.app.state, "cache", None)
        return {
            "status": "healthy",
            "upstream": config.upstream_url,
            "cache": cache.get_cache_stats() if cache is not None else {"enabled": False},
        }

    @app.get("/metrics/performance")
    def get_performance_metrics():
        """Cache, upstream and endpoint metrics."""
        return get_monitor().get_performance_summary()

    @app.get("/metrics/cache")
    def get_cache_metrics():
        """Detailed cache analytics."""
        return get_monitor().get_cache_analytics()

    @app.get("/metrics/system")
    def get_system_metrics():
        """Process-level metrics."""
        monitor = get_monitor()
        try:
            import psutil  # type: ignore[import]

            cpu_percent = psutil.cpu_percent()
            memory_mb = psutil.Process().memory_info().rss / (1024 * 1024)
        except ImportError:
            cpu_percent = 0.0
            memory_mb = 0.0

        monitor.update_system_metrics(
            memory_usage_mb=memory_mb, cpu_usage_percent=cpu_percent
        )
        return {
            "uptime_seconds": monitor.system_metrics.uptime_seconds,
            "total_requests": monitor.system_metrics.total_requests,
            "memory_usage_mb": round(memory_mb, 2),
            "cpu_usage_percent": round(cpu_percent, 2),
        }

    @app.post("/metrics/reset")
    def reset_metrics():
        """Reset all performance metrics."""
        get_monitor().reset_metrics()
        return {
            "message": "All metrics have been reset",
            "timestamp": datetime.now().isoformat(),
        }

    @app.exception_handler(404)
    async def not_found_handler(request, exc):
        return JSONResponse(
            status_code=404,
            content={
                "error": "Not Found",
                "detail": (
                    str(exc.detail)
                    if hasattr(exc, "detail")
                    else "The requested resource was not found"
                ),
                "path": str(request.url.path),
            },
        )

    @app.exception_handler(500)
    async def internal_error_handler(request, exc):
        logger.error(f"Unhandled error on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal Server Error",
                "detail": "An unexpected error occurred processing your request",
            },
        )

    return app


app = create_app()
