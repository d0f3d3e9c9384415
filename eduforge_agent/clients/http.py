"""
HTTP Client Module - Client factory

This module provides HTTP client factory functionality with connection
pooling, timeouts and connection-level retries. It is used for both the
reasoning service and the plugin backend so each downstream gets its own
pool.

Pattern: Factory pattern for creating configured HTTP clients
"""

from typing import Optional

import httpx


DEFAULT_TIMEOUT_SECONDS: float = 30.0
"""Default timeout for HTTP requests in seconds."""

DEFAULT_MAX_CONNECTIONS: int = 100
"""Maximum number of connections in the pool."""

DEFAULT_MAX_KEEPALIVE: int = 20
"""Maximum number of keepalive connections."""

DEFAULT_RETRY_COUNT: int = 3
"""Connection-level retries. Requests that reached the server are never retried."""


def create_http_client(
    base_url: Optional[str] = None,
    timeout_seconds: Optional[float] = None,
    max_connections: Optional[int] = None,
    max_keepalive: Optional[int] = None,
    retries: Optional[int] = None,
    headers: Optional[dict[str, str]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Create a configured HTTP client with connection pooling and timeouts.

    Args:
        base_url: Base URL for all requests (e.g., "http://localhost:3001")
        timeout_seconds: Request timeout in seconds (default: 30.0)
        max_connections: Maximum connections in pool (default: 100)
        max_keepalive: Maximum keepalive connections (default: 20)
        retries: Number of connection retries (default: 3)
        headers: Additional headers to include in all requests
        transport: Explicit transport (tests pass httpx.MockTransport)

    Returns:
        httpx.AsyncClient: Configured async HTTP client

    Example:
        >>> client = create_http_client(
        ...     base_url="http://plugin-backend:3001",
        ...     timeout_seconds=30.0,
        ... )
        >>> async with client:
        ...     response = await client.get("/health")
    """
    timeout = timeout_seconds if timeout_seconds is not None else DEFAULT_TIMEOUT_SECONDS
    max_conn = max_connections if max_connections is not None else DEFAULT_MAX_CONNECTIONS
    max_keep = max_keepalive if max_keepalive is not None else DEFAULT_MAX_KEEPALIVE
    retry_count = retries if retries is not None else DEFAULT_RETRY_COUNT

    limits = httpx.Limits(
        max_connections=max_conn,
        max_keepalive_connections=max_keep,
    )

    timeout_config = httpx.Timeout(
        connect=timeout,
        read=timeout,
        write=timeout,
        pool=timeout,
    )

    default_headers = {
        "User-Agent": "eduforge-agent/1.0",
        "Accept": "application/json",
    }
    if headers:
        default_headers.update(headers)

    if transport is None:
        transport = httpx.AsyncHTTPTransport(
            retries=retry_count,
            limits=limits,
        )

    return httpx.AsyncClient(
        base_url=base_url or "",
        timeout=timeout_config,
        headers=default_headers,
        transport=transport,
    )
