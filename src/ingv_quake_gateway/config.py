"""Runtime configuration for the gateway.

All settings are read from environment variables by
:meth:`GatewayConfig.from_env`; tests construct :class:`GatewayConfig`
directly.

Environment variables:
    QUAKE_UPSTREAM_URL     FDSN event query endpoint.
    REDIS_URL              Redis connection URL (default redis://localhost:6379/0).
    QUAKE_CACHE_ENABLED    "false" disables the response cache entirely.
    QUAKE_CACHE_TTL        Cache entry lifetime in seconds (default 10).
    QUAKE_REDIS_PREFIX     Prefix for cache keys (default "quake:").
    QUAKE_FORCE_FAKEREDIS  "1" uses an in-memory fakeredis store.
    QUAKE_GRAPHQL_PATH     Mount path of the GraphQL endpoint (default /graphql).
    QUAKE_HTTP_TIMEOUT     Upstream timeout in seconds (unset: no timeout).
    QUAKE_LOG_LEVEL        Python logging level name.
    PORT                   Listening port for ``run_server`` (default 8080).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_UPSTREAM_URL = "http://webservices.ingv.it/fdsnws/event/1/query"
DEFAULT_CACHE_TTL = 10


@dataclass
class GatewayConfig:
    """Configuration container for the gateway application.

    Attributes:
        upstream_url: FDSN event query endpoint.
        redis_url: Redis connection URL.
        cache_enabled: Route time-ranged queries through the response cache.
        cache_ttl: Entry lifetime in seconds.
        redis_prefix: Prepended to every cache key.
        force_fakeredis: Use ``fakeredis`` instead of a real server.
        graphql_path: Mount path of the GraphQL router.
        http_timeout: Upstream timeout in seconds, ``None`` for no timeout.
        log_level: Python logging level name.
        port: Listening port used by ``run_server``.
    """

    upstream_url: str = DEFAULT_UPSTREAM_URL
    redis_url: str = "redis://localhost:6379/0"
    cache_enabled: bool = True
    cache_ttl: int = DEFAULT_CACHE_TTL
    redis_prefix: str = "quake:"
    force_fakeredis: bool = False
    graphql_path: str = "/graphql"
    http_timeout: Optional[float] = None
    log_level: str = "INFO"
    port: int = 8080

    @classmethod
    def from_env(cls) -> "GatewayConfig":
        """Create configuration from environment variables."""
        timeout = os.getenv("QUAKE_HTTP_TIMEOUT")
        return cls(
            upstream_url=os.getenv("QUAKE_UPSTREAM_URL", DEFAULT_UPSTREAM_URL),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            cache_enabled=os.getenv("QUAKE_CACHE_ENABLED", "true").lower() == "true",
            cache_ttl=int(os.getenv("QUAKE_CACHE_TTL", str(DEFAULT_CACHE_TTL))),
            redis_prefix=os.getenv("QUAKE_REDIS_PREFIX", "quake:"),
            force_fakeredis=os.getenv("QUAKE_FORCE_FAKEREDIS") == "1",
            graphql_path=os.getenv("QUAKE_GRAPHQL_PATH", "/graphql"),
            http_timeout=float(timeout) if timeout else None,
            log_level=os.getenv("QUAKE_LOG_LEVEL", "INFO"),
            port=int(os.getenv("PORT", "8080")),
        )
