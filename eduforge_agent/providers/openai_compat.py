"""
OpenAI-compatible Reasoning Provider

One adapter serves every provider that exposes the OpenAI chat completion
contract (OpenAI, Qwen/DashScope, DeepSeek, Zhipu, Doubao, Ollama). Only the
base URL differs.
"""

import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Optional

import httpx

from eduforge_agent.clients.http import create_http_client
from eduforge_agent.core.exceptions import ReasoningServiceError
from eduforge_agent.models.requests import ChatCompletionRequest
from eduforge_agent.models.responses import ChatCompletionResponse
from eduforge_agent.providers.base import ReasoningService
from eduforge_agent.providers.sse import iter_sse_payloads

logger = logging.getLogger(__name__)


PROVIDER_URLS: dict[str, str] = {
    "openai": "https://api.openai.com/v1",
    "qwen": "https://dashscope.aliyuncs.com/compatible-mode/v1",
    "deepseek": "https://api.deepseek.com/v1",
    "zhipu": "https://open.bigmodel.cn/api/paas/v4",
    "doubao": "https://ark.cn-beijing.volces.com/api/v3",
    "ollama": "http://localhost:11434/v1",
}

# Error bodies can be whole HTML pages
MAX_ERROR_BODY = 500


def resolve_base_url(provider: str, base_url: Optional[str] = None) -> str:
    """Pick the explicit base URL, else the provider's default, else OpenAI's."""
    if base_url:
        return base_url.rstrip("/")
    return PROVIDER_URLS.get(provider, PROVIDER_URLS["openai"])


class OpenAICompatibleProvider(ReasoningService):
    """
    Reasoning service adapter for OpenAI-compatible endpoints.

    Example:
        >>> provider = OpenAICompatibleProvider(provider="deepseek", api_key="sk-...")
        >>> response = await provider.complete(request)
        >>> response.message.content
    """

    def __init__(
        self,
        provider: str = "openai",
        api_key: str = "",
        base_url: Optional[str] = None,
        timeout_seconds: float = 120.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize the provider.

        Args:
            provider: Provider key in PROVIDER_URLS.
            api_key: Bearer token for the endpoint.
            base_url: Override for the provider's default base URL.
            timeout_seconds: Transport timeout.
            http_client: Optional pre-configured HTTP client (for testing).
        """
        self.name = provider
        self._base_url = resolve_base_url(provider, base_url)
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        if http_client is not None:
            self._client = http_client
            self._client.headers.update(headers)
            self._owns_client = False
        else:
            self._client = create_http_client(
                base_url=self._base_url,
                timeout_seconds=timeout_seconds,
                headers=headers,
            )
            self._owns_client = True

    @property
    def base_url(self) -> str:
        return self._base_url

    def _url(self) -> str:
        return f"{self._base_url}/chat/completions"

    def _status_error(self, status_code: int, body: str) -> ReasoningServiceError:
        return ReasoningServiceError(
            f"Reasoning request failed ({status_code}): {body[:MAX_ERROR_BODY]}",
            provider=self.name,
            status_code=status_code,
        )

    async def complete(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        payload = request.model_copy(update={"stream": False}).to_payload()
        logger.debug(f"Reasoning request: provider={self.name} model={request.model}")
        try:
            response = await self._client.post(self._url(), json=payload)
        except httpx.HTTPError as e:
            raise ReasoningServiceError(
                f"Reasoning service unreachable: {e}", provider=self.name
            ) from e

        if response.status_code >= 400:
            raise self._status_error(response.status_code, response.text)

        try:
            return ChatCompletionResponse.model_validate(response.json())
        except ValueError as e:
            raise ReasoningServiceError(
                f"Invalid reasoning response: {e}", provider=self.name
            ) from e

    async def stream(self, request: ChatCompletionRequest) -> AsyncIterator[dict[str, Any]]:
        payload = request.model_copy(update={"stream": True}).to_payload()
        logger.debug(f"Reasoning stream: provider={self.name} model={request.model}")
        try:
            async with self._client.stream("POST", self._url(), json=payload) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise self._status_error(response.status_code, body)

                async with aclosing(iter_sse_payloads(response.aiter_text())) as chunks:
                    async for chunk in chunks:
                        if "error" in chunk and "choices" not in chunk:
                            raise ReasoningServiceError(
                                f"Reasoning stream error: {chunk['error']}",
                                provider=self.name,
                            )
                        yield chunk
        except httpx.HTTPError as e:
            raise ReasoningServiceError(
                f"Reasoning stream failed: {e}", provider=self.name
            ) from e

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
