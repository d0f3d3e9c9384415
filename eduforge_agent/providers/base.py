"""
Reasoning Service Interface

This module defines the abstract interface the agent uses to talk to the
reasoning service (an OpenAI-compatible chat completion endpoint).

Design Pattern:
- Ports and Adapters (Hexagonal Architecture)
- ReasoningService is the port; OpenAICompatibleProvider and
  ScriptedReasoningService are adapters
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

from eduforge_agent.models.requests import ChatCompletionRequest
from eduforge_agent.models.responses import ChatCompletionResponse


class ReasoningService(ABC):
    """
    Abstract base class for reasoning service adapters.

    Methods:
        complete: Non-streaming chat completion
        stream: Streaming chat completion yielding decoded frame payloads
        close: Release network resources

    Neither method retries. Failures raise ReasoningServiceError.
    """

    name: str = "reasoning"

    @abstractmethod
    async def complete(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        """
        Generate a complete response.

        Args:
            request: Messages, tool schemas and sampling parameters.

        Returns:
            ChatCompletionResponse whose first choice carries content
            and/or tool calls.

        Raises:
            ReasoningServiceError: Non-success response or transport failure.
        """
        ...

    @abstractmethod
    def stream(self, request: ChatCompletionRequest) -> AsyncIterator[dict[str, Any]]:
        """
        Generate a streamed response.

        Implemented as an async generator. Closing it early (caller abort)
        must release the underlying connection.

        Yields:
            Decoded chunk payloads in OpenAI delta format, e.g.
            {"choices": [{"index": 0, "delta": {"content": "你"}}]}

        Raises:
            ReasoningServiceError: Non-success response or transport failure.
        """
        ...

    async def close(self) -> None:
        """Release resources. Default: nothing to release."""
        return None
