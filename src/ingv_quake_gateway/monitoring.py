"""In-process timing and cache instrumentation.

The monitoring layer aggregates runtime telemetry so the HTTP middleware,
GraphQL resolvers, the response cache and the upstream client can record
lightweight events without embedding aggregation logic. No external backend
is required.

Collected domains:
        * Response cache (hits, misses, store read errors, failed writes)
        * Upstream calls (count, failures, latency)
        * Endpoint latency & error rates (rolling sample window + aggregates)
        * Process snapshot (uptime, memory, CPU when sampled)

Example (recording a cache lookup)::

        from ingv_quake_gateway.monitoring import get_monitor
        monitor = get_monitor()
        monitor.record_cache_hit(response_time=0.001)
        monitor.record_cache_miss(response_time=0.004)
        print(monitor.get_cache_analytics()["performance"]["hit_rate_percent"])  # 50.0

Lifecycle:
        * :func:`get_monitor` lazily creates the process-wide instance.
        * :meth:`PerformanceMonitor.reset_metrics` re-baselines counters
            (``POST /metrics/reset`` and tests).
"""

from __future__ import annotations

import threading
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class CacheMetrics:
    """Aggregate response cache metrics.

    Attributes:
        hits: Lookups answered from the store.
        misses: Lookups that fell through to the upstream computation.
        store_errors: Reads that failed and were treated as misses.
        write_failures: Background writes that were discarded.
        total_requests: Aggregate hits + misses.
        hit_rate: Rolling hit ratio (0..1).
        average_response_time: Mean lookup time (seconds).
    """

    hits: int = 0
    misses: int = 0
    store_errors: int = 0
    write_failures: int = 0
    total_requests: int = 0
    hit_rate: float = 0.0
    average_response_time: float = 0.0


@dataclass
class UpstreamMetrics:
    """Counters for calls to the event web service."""

    total_requests: int = 0
    failures: int = 0
    total_response_time: float = 0.0
    average_response_time: float = 0.0


@dataclass
class EndpointMetrics:
    """Aggregated metrics for a single logical endpoint.

    Attributes:
        total_requests: Count of invocations.
        total_response_time: Cumulative latency (seconds).
        average_response_time: Mean latency (seconds).
        error_count: Number of requests resulting in error (HTTP >= 400).
        error_rate: error_count / total_requests (0..1).
        last_accessed: Datetime of most recent invocation.
        response_times: Rolling window of recent latencies.
    """

    total_requests: int = 0
    total_response_time: float = 0.0
    average_response_time: float = 0.0
    error_count: int = 0
    error_rate: float = 0.0
    last_accessed: Optional[datetime] = None
    response_times: deque = field(default_factory=lambda: deque(maxlen=100))


@dataclass
class SystemMetrics:
    """Process snapshot metrics."""

    uptime_seconds: float = 0.0
    total_requests: int = 0
    memory_usage_mb: float = 0.0
    cpu_usage_percent: float = 0.0


class PerformanceMonitor:
    """Central coordinator for recording and querying metrics.

    Mutating methods take a shared re-entrant lock; summary methods return
    primitive-only dictionaries ready for JSON encoding.
    """

    def __init__(self, enable_detailed_tracking: bool = True):
        self.enable_detailed_tracking = enable_detailed_tracking
        self.start_time = datetime.now()
        self._lock = threading.RLock()

        self.cache_metrics = CacheMetrics()
        self.upstream_metrics = UpstreamMetrics()
        self.endpoint_metrics: Dict[str, EndpointMetrics] = defaultdict(EndpointMetrics)
        self.system_metrics = SystemMetrics()
        self.recent_errors: deque = deque(maxlen=100)

    # ---------------- Cache -----------------
    def record_cache_hit(self, response_time: float = 0.0) -> None:
        with self._lock:
            self.cache_metrics.hits += 1
            self.cache_metrics.total_requests += 1
            self._update_cache_metrics(response_time)

    def record_cache_miss(self, response_time: float = 0.0) -> None:
        with self._lock:
            self.cache_metrics.misses += 1
            self.cache_metrics.total_requests += 1
            self._update_cache_metrics(response_time)

    def record_cache_store_error(self) -> None:
        """Record a store read failure (the lookup is also counted as a miss)."""
        with self._lock:
            self.cache_metrics.store_errors += 1

    def record_cache_write_failure(self) -> None:
        with self._lock:
            self.cache_metrics.write_failures += 1

    def _update_cache_metrics(self, response_time: float) -> None:
        total = self.cache_metrics.total_requests
        if total > 0:
            self.cache_metrics.hit_rate = self.cache_metrics.hits / total

        if response_time > 0:
            current_avg = self.cache_metrics.average_response_time
            self.cache_metrics.average_response_time = (
                current_avg * (total - 1) + response_time
            ) / total

    # ---------------- Upstream -----------------
    def record_upstream_request(self, response_time: float, success: bool = True) -> None:
        """Record one call to the event web service.

        Args:
            response_time: Seconds spent on the HTTP exchange.
            success: False when the call raised or returned a non-2xx status.
        """
        with self._lock:
            metrics = self.upstream_metrics
            metrics.total_requests += 1
            metrics.total_response_time += response_time
            metrics.average_response_time = (
                metrics.total_response_time / metrics.total_requests
            )
            if not success:
                metrics.failures += 1

    # ---------------- Endpoints -----------------
    def record_endpoint_request(
        self, endpoint: str, response_time: float, status_code: int = 200
    ) -> None:
        """Record an HTTP endpoint or GraphQL operation invocation.

        Args:
            endpoint: Logical endpoint name or path.
            response_time: Time in seconds for handling the request.
            status_code: HTTP status used to compute error rate (>=400 counts as error).
        """
        with self._lock:
            metrics = self.endpoint_metrics[endpoint]
            metrics.total_requests += 1
            metrics.total_response_time += response_time
            metrics.average_response_time = (
                metrics.total_response_time / metrics.total_requests
            )
            metrics.last_accessed = datetime.now()

            if self.enable_detailed_tracking:
                metrics.response_times.append(response_time)

            if status_code >= 400:
                metrics.error_count += 1
                self.recent_errors.append(
                    {
                        "endpoint": endpoint,
                        "status_code": status_code,
                        "timestamp": datetime.now().isoformat(),
                        "response_time": response_time,
                    }
                )

            metrics.error_rate = metrics.error_count / metrics.total_requests
            self.system_metrics.total_requests += 1

    def update_system_metrics(
        self, memory_usage_mb: float = 0.0, cpu_usage_percent: float = 0.0
    ) -> None:
        """Update instantaneous process metrics (external sampler hook)."""
        with self._lock:
            self.system_metrics.memory_usage_mb = memory_usage_mb
            self.system_metrics.cpu_usage_percent = cpu_usage_percent
            self.system_metrics.uptime_seconds = (
                datetime.now() - self.start_time
            ).total_seconds()

    # ---------------- Summaries -----------------
    def get_performance_summary(self) -> Dict[str, Any]:
        """Return a consolidated snapshot of cache, upstream and endpoint metrics."""
        with self._lock:
            top_endpoints = sorted(
                self.endpoint_metrics.items(),
                key=lambda x: x[1].total_requests,
                reverse=True,
            )[:10]

            recent_errors_summary: Dict[int, int] = {}
            for error in list(self.recent_errors)[-20:]:
                status = error["status_code"]
                recent_errors_summary[status] = recent_errors_summary.get(status, 0) + 1

            return {
                "timestamp": datetime.now().isoformat(),
                "uptime_seconds": round(
                    (datetime.now() - self.start_time).total_seconds(), 2
                ),
                "cache": {
                    "hit_rate": round(self.cache_metrics.hit_rate * 100, 2),
                    "total_requests": self.cache_metrics.total_requests,
                    "hits": self.cache_metrics.hits,
                    "misses": self.cache_metrics.misses,
                    "store_errors": self.cache_metrics.store_errors,
                    "write_failures": self.cache_metrics.write_failures,
                },
                "upstream": {
                    "total_requests": self.upstream_metrics.total_requests,
                    "failures": self.upstream_metrics.failures,
                    "average_response_time_ms": round(
                        self.upstream_metrics.average_response_time * 1000, 2
                    ),
                },
                "api": {
                    "total_requests": self.system_metrics.total_requests,
                    "top_endpoints": [
                        {
                            "endpoint": endpoint,
                            "requests": metrics.total_requests,
                            "avg_response_time_ms": round(
                                metrics.average_response_time * 1000, 2
                            ),
                            "error_rate": round(metrics.error_rate * 100, 2),
                        }
                        for endpoint, metrics in top_endpoints
                    ],
                },
                "errors": {
                    "recent_errors_by_status": recent_errors_summary,
                    "total_recent_errors": len(self.recent_errors),
                },
            }

    def get_cache_analytics(self) -> Dict[str, Any]:
        """Return cache analytics and tuning recommendations."""
        with self._lock:
            hit_rate = self.cache_metrics.hit_rate
            return {
                "performance": {
                    "hit_rate_percent": round(hit_rate * 100, 2),
                    "miss_rate_percent": round((1 - hit_rate) * 100, 2),
                    "average_response_time_ms": round(
                        self.cache_metrics.average_response_time * 1000, 2
                    ),
                    "cache_efficiency": (
                        "excellent"
                        if hit_rate > 0.9
                        else "good" if hit_rate > 0.8 else "fair" if hit_rate > 0.6 else "poor"
                    ),
                },
                "usage": {
                    "total_requests": self.cache_metrics.total_requests,
                    "cache_hits": self.cache_metrics.hits,
                    "cache_misses": self.cache_metrics.misses,
                    "store_errors": self.cache_metrics.store_errors,
                    "write_failures": self.cache_metrics.write_failures,
                },
                "recommendations": self._get_cache_recommendations(),
            }

    def _get_cache_recommendations(self) -> List[str]:
        recommendations = []

        if self.cache_metrics.total_requests and self.cache_metrics.hit_rate < 0.5:
            recommendations.append(
                "Cache hit rate is below 50%. Consider increasing QUAKE_CACHE_TTL."
            )

        if self.cache_metrics.store_errors or self.cache_metrics.write_failures:
            recommendations.append(
                "Cache store errors detected. Check Redis connectivity."
            )

        if not recommendations:
            recommendations.append("Cache performance is nominal.")

        return recommendations

    def reset_metrics(self) -> None:
        """Reset all counters (tests or manual re-baselining)."""
        with self._lock:
            self.cache_metrics = CacheMetrics()
            self.upstream_metrics = UpstreamMetrics()
            self.endpoint_metrics.clear()
            self.system_metrics = SystemMetrics()
            self.recent_errors.clear()
            self.start_time = datetime.now()


_monitor: Optional[PerformanceMonitor] = None


def get_monitor() -> PerformanceMonitor:
    """Return (and lazily initialize) the process-wide monitor."""
    global _monitor
    if _monitor is None:
        _monitor = PerformanceMonitor()
    return _monitor


def initialize_monitor(enable_detailed_tracking: bool = True) -> PerformanceMonitor:
    """Force (re-)initialization of the process-wide monitor."""
    global _monitor
    _monitor = PerformanceMonitor(enable_detailed_tracking)
    return _monitor
