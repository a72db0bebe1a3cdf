"""Call observation: counters and duration histograms around every request.

The core only talks to a `RequestObserver`; `PrometheusMetrics` is the
implementation wired in by the server, `NullObserver` is the default.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import Protocol, TypeVar

from prometheus_client import CollectorRegistry, Counter, Histogram, REGISTRY

T = TypeVar("T")

DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)


class RequestObserver(Protocol):
    async def observe_gateway_request(
        self, endpoint_type: str, operation: Callable[[], Awaitable[T]]
    ) -> T: ...

    async def observe_tool_call(
        self, tool_name: str, operation: Callable[[], Awaitable[T]]
    ) -> T: ...


class NullObserver:
    """Runs operations without recording anything."""

    async def observe_gateway_request(
        self, endpoint_type: str, operation: Callable[[], Awaitable[T]]
    ) -> T:
        return await operation()

    async def observe_tool_call(
        self, tool_name: str, operation: Callable[[], Awaitable[T]]
    ) -> T:
        return await operation()


class PrometheusMetrics:
    """Prometheus counters/histograms for tool calls and gateway requests."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        registry = REGISTRY if registry is None else registry
        self.mcp_tool_calls_total = Counter(
            "mcp_tool_calls",
            "Total number of MCP tool calls",
            ["tool_name", "status"],
            registry=registry,
        )
        self.mcp_tool_call_duration_seconds = Histogram(
            "mcp_tool_call_duration_seconds",
            "Duration of MCP tool calls in seconds",
            ["tool_name"],
            buckets=DEFAULT_BUCKETS,
            registry=registry,
        )
        self.gateway_requests_total = Counter(
            "gateway_requests",
            "Total number of requests to the Graph Gateway",
            ["endpoint_type", "status"],
            registry=registry,
        )
        self.gateway_request_duration_seconds = Histogram(
            "gateway_request_duration_seconds",
            "Duration of Graph Gateway requests in seconds",
            ["endpoint_type"],
            buckets=DEFAULT_BUCKETS,
            registry=registry,
        )

    async def observe_gateway_request(
        self, endpoint_type: str, operation: Callable[[], Awaitable[T]]
    ) -> T:
        return await _observe(
            operation,
            self.gateway_requests_total,
            self.gateway_request_duration_seconds,
            endpoint_type,
        )

    async def observe_tool_call(
        self, tool_name: str, operation: Callable[[], Awaitable[T]]
    ) -> T:
        return await _observe(
            operation,
            self.mcp_tool_calls_total,
            self.mcp_tool_call_duration_seconds,
            tool_name,
        )


async def _observe(
    operation: Callable[[], Awaitable[T]],
    counter: Counter,
    histogram: Histogram,
    label: str,
) -> T:
    start = time.perf_counter()
    status = "error"
    try:
        result = await operation()
        status = "success"
        return result
    finally:
        counter.labels(label, status).inc()
        histogram.labels(label).observe(time.perf_counter() - start)
