"""
Prometheus Metrics Module

HTTP request metrics collected by MetricsMiddleware plus agent-specific
counters for turns, tool calls, pending actions and the iteration cap.
"""

import re
import time
from typing import Any, Callable, Optional

from prometheus_client import Counter, Histogram, make_asgi_app

# =============================================================================
# Path Normalization (High Cardinality Prevention)
# =============================================================================

# Order matters: more specific patterns first
_PATH_PATTERNS = [
    (re.compile(r"/[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"), "/{id}"),
    # uuid4().hex session and action ids
    (re.compile(r"/[0-9a-fA-F]{32}(?=/|$)"), "/{id}"),
    (re.compile(r"/[0-9a-fA-F]{8,}(?=/|$)"), "/{id}"),
    (re.compile(r"/\d+(?=/|$)"), "/{id}"),
]


def normalize_path(path: str) -> str:
    """
    Replace dynamic path segments with a placeholder.

    Examples:
        >>> normalize_path("/api/chat/confirm/0f8fad5bd9cb469fa16570867728950e")
        '/api/chat/confirm/{id}'
        >>> normalize_path("/health")
        '/health'
    """
    if path == "/":
        return path

    normalized = path
    for pattern, replacement in _PATH_PATTERNS:
        normalized = pattern.sub(replacement, normalized)
    return normalized


# =============================================================================
# HTTP Metrics
# =============================================================================

REQUESTS_TOTAL = Counter(
    name="eduforge_agent_requests_total",
    documentation="Total number of HTTP requests",
    labelnames=["method", "path", "status"],
)

REQUEST_DURATION_SECONDS = Histogram(
    name="eduforge_agent_request_duration_seconds",
    documentation="HTTP request duration in seconds",
    labelnames=["method", "path"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

# =============================================================================
# Agent Metrics
# =============================================================================

AGENT_TURNS_TOTAL = Counter(
    name="eduforge_agent_turns_total",
    documentation="Agent turns started, by mode (sync/stream)",
    labelnames=["mode"],
)

TOOL_CALLS_TOTAL = Counter(
    name="eduforge_agent_tool_calls_total",
    documentation="Tool calls requested by the model, by tool and outcome",
    labelnames=["tool", "outcome"],
)

PENDING_ACTIONS_TOTAL = Counter(
    name="eduforge_agent_pending_actions_total",
    documentation="Pending action lifecycle transitions, by resulting status",
    labelnames=["status"],
)

ITERATION_LIMIT_TOTAL = Counter(
    name="eduforge_agent_iteration_limit_total",
    documentation="Turns that hit the iteration cap and returned the degraded reply",
    labelnames=["mode"],
)


def record_turn(mode: str) -> None:
    AGENT_TURNS_TOTAL.labels(mode=mode).inc()


def record_tool_call(tool: str, outcome: str) -> None:
    """
    Record a tool call outcome.

    Args:
        tool: Registered tool name, or "unknown" for names the registry
            does not hold.
        outcome: success, error, permission_denied, invalid_arguments or
            pending_confirmation.
    """
    TOOL_CALLS_TOTAL.labels(tool=tool, outcome=outcome).inc()


def record_pending_action(status: str) -> None:
    PENDING_ACTIONS_TOTAL.labels(status=status).inc()


def record_iteration_limit(mode: str) -> None:
    ITERATION_LIMIT_TOTAL.labels(mode=mode).inc()


# =============================================================================
# MetricsMiddleware
# =============================================================================


class MetricsMiddleware:
    """
    ASGI middleware for Prometheus request metrics.

    Streaming responses are timed until the last body chunk is sent.
    """

    def __init__(
        self,
        app: Callable[..., Any],
        exclude_paths: Optional[list[str]] = None,
    ) -> None:
        self.app = app
        self.exclude_paths = exclude_paths or ["/metrics"]

    async def __call__(
        self,
        scope: dict[str, Any],
        receive: Callable[..., Any],
        send: Callable[..., Any],
    ) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        raw_path = scope.get("path", "/")
        if raw_path in self.exclude_paths or raw_path.startswith("/metrics"):
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "GET")
        path = normalize_path(raw_path)
        start_time = time.perf_counter()
        status_code = "500"

        async def send_wrapper(message: dict[str, Any]) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = str(message.get("status", 500))
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            REQUESTS_TOTAL.labels(method=method, path=path, status=status_code).inc()
            REQUEST_DURATION_SECONDS.labels(method=method, path=path).observe(
                time.perf_counter() - start_time
            )


def get_metrics_app() -> Callable[..., Any]:
    """ASGI app serving the Prometheus exposition format."""
    return make_asgi_app()
