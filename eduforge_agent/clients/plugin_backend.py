"""
Plugin Backend Client

This module provides a client for the question-bank and homework plugins
of the EduForge platform. Built-in tools never touch storage directly; they
call the plugin routes on behalf of the acting user, who is forwarded in the
same identity headers the agent API receives.

Pattern: Client adapter for microservice communication
"""

import logging
from typing import Any, Optional

import httpx

from eduforge_agent.clients.http import create_http_client
from eduforge_agent.models.domain import ToolContext

logger = logging.getLogger(__name__)


QUESTION_BANK_PREFIX = "/api/plugins/question-bank"
HOMEWORK_PREFIX = "/api/plugins/homework"


class PluginBackendError(Exception):
    """Exception for plugin backend failures (unreachable, timeout, non-2xx)."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PluginBackendClient:
    """
    Client for the plugin backend.

    Example:
        >>> client = PluginBackendClient(base_url="http://localhost:3001")
        >>> questions = await client.query_questions(context, subject="数学")
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        """
        Initialize PluginBackendClient.

        Args:
            base_url: Base URL of the plugin backend
            http_client: Optional pre-configured HTTP client (for testing)
            timeout_seconds: Request timeout in seconds
        """
        if http_client is not None:
            self._client = http_client
            self._owns_client = False
        else:
            self._client = create_http_client(
                base_url=base_url or "http://localhost:3001",
                timeout_seconds=timeout_seconds,
            )
            self._owns_client = True

    async def close(self) -> None:
        """Close the HTTP client if owned by this instance."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "PluginBackendClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @staticmethod
    def _identity_headers(context: ToolContext) -> dict[str, str]:
        headers = {"X-User-Id": context.user_id, "X-User-Role": context.role}
        if context.school_id:
            headers["X-School-Id"] = context.school_id
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        context: ToolContext,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> Any:
        """
        Send a request as the acting user and decode the JSON body.

        Raises:
            PluginBackendError: On connection errors, timeouts and non-2xx.
        """
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        try:
            response = await self._client.request(
                method,
                path,
                params=params or None,
                json=json,
                headers=self._identity_headers(context),
            )
            response.raise_for_status()
            return response.json()
        except httpx.ConnectError as e:
            raise PluginBackendError(f"Plugin backend unavailable: {e}") from e
        except httpx.TimeoutException as e:
            raise PluginBackendError(f"Plugin backend request timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            logger.error(f"Plugin backend HTTP error: {e.response.status_code} {path}")
            raise PluginBackendError(
                f"Plugin backend error: HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except ValueError as e:
            raise PluginBackendError(f"Plugin backend returned invalid JSON: {e}") from e

    # =========================================================================
    # Question Bank
    # =========================================================================

    async def query_questions(self, context: ToolContext, **filters: Any) -> Any:
        return await self._request(
            "GET", f"{QUESTION_BANK_PREFIX}/questions", context, params=filters
        )

    async def generate_questions(
        self, context: ToolContext, payload: dict[str, Any]
    ) -> Any:
        return await self._request(
            "POST", f"{QUESTION_BANK_PREFIX}/questions/generate", context, json=payload
        )

    # =========================================================================
    # Homework
    # =========================================================================

    async def query_assignments(self, context: ToolContext, **filters: Any) -> Any:
        return await self._request(
            "GET", f"{HOMEWORK_PREFIX}/assignments", context, params=filters
        )

    async def create_assignment(self, context: ToolContext, payload: dict[str, Any]) -> Any:
        return await self._request(
            "POST", f"{HOMEWORK_PREFIX}/assignments", context, json=payload
        )

    async def query_submissions(self, context: ToolContext, **filters: Any) -> Any:
        return await self._request(
            "GET", f"{HOMEWORK_PREFIX}/submissions", context, params=filters
        )

    async def query_analytics(
        self, context: ToolContext, class_id: str, metric: Optional[str] = None
    ) -> Any:
        return await self._request(
            "GET",
            f"{HOMEWORK_PREFIX}/analytics/classes/{class_id}",
            context,
            params={"metric": metric},
        )
