"""
Request Logging Middleware

Logs method, path, status and duration for every request, binds a
correlation id for the lifetime of the request, and redacts sensitive
headers before they reach the log.
"""

import logging
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from eduforge_agent.observability.logging import correlation_id_context


logger = logging.getLogger(__name__)

CORRELATION_ID_HEADER = "X-Correlation-Id"

# Headers that should be redacted (case-insensitive substring match)
SENSITIVE_HEADER_PATTERNS = [
    "authorization",
    "api-key",
    "apikey",
    "x-api-key",
    "api_key",
    "x-auth-token",
    "cookie",
    "set-cookie",
]


def redact_sensitive_headers(headers: dict[str, str]) -> dict[str, str]:
    """
    Redact sensitive headers from a headers dictionary.

    Args:
        headers: Dictionary of HTTP headers

    Returns:
        Dictionary with sensitive values replaced with [REDACTED]
    """
    redacted = {}
    for key, value in headers.items():
        key_lower = key.lower()
        is_sensitive = any(pattern in key_lower for pattern in SENSITIVE_HEADER_PATTERNS)
        redacted[key] = "[REDACTED]" if is_sensitive else value
    return redacted


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for logging HTTP requests and responses.

    The correlation id comes from the X-Correlation-Id request header when
    present, otherwise a new one is generated. It is echoed in the response.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        start_time = time.perf_counter()
        method = request.method
        path = request.url.path
        client_host = request.client.host if request.client else "unknown"
        correlation_id = request.headers.get(CORRELATION_ID_HEADER) or uuid.uuid4().hex

        with correlation_id_context(correlation_id):
            logger.debug(
                f"Request: {method} {path} from {client_host} "
                f"headers={redact_sensitive_headers(dict(request.headers))}"
            )
            try:
                response = await call_next(request)
            except Exception as e:
                duration_ms = (time.perf_counter() - start_time) * 1000
                logger.error(
                    f"Request failed: {method} {path} from {client_host} "
                    f"error={type(e).__name__}: {e} duration={duration_ms:.2f}ms"
                )
                raise

            duration_ms = (time.perf_counter() - start_time) * 1000
            log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
            logger.log(
                log_level,
                f"{method} {path} {response.status_code} "
                f"from {client_host} duration={duration_ms:.2f}ms",
            )

        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response
