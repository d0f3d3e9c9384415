"""
Scripted Reasoning Service - Test Double Implementation

A real implementation of the ReasoningService interface that replays a queue
of scripted turns instead of calling a model. It is a proper test double,
not a mock, and also backs reasoning_provider="fake" for local development
without API keys.

Each turn is either a text reply, a batch of tool calls, an error, or a
literal list of stream payloads (to exercise arbitrary fragmentation).
"""

import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Iterable, Optional

from eduforge_agent.models.domain import ToolCall
from eduforge_agent.models.requests import ChatCompletionRequest
from eduforge_agent.models.responses import ChatCompletionResponse, Choice, ChoiceMessage
from eduforge_agent.providers.base import ReasoningService

DEFAULT_REPLY = "这是一个本地测试回复。"


@dataclass
class ScriptedTurn:
    """
    One model turn.

    Attributes:
        content: Assistant text.
        tool_calls: Requested tool calls.
        chunks: Literal stream payloads; replaces the generated ones in stream().
        error: Raised instead of answering.
    """

    content: Optional[str] = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    chunks: Optional[list[dict[str, Any]]] = None
    error: Optional[Exception] = None

    @classmethod
    def text(cls, content: str) -> "ScriptedTurn":
        return cls(content=content)

    @classmethod
    def calls(cls, *tool_calls: ToolCall, content: Optional[str] = None) -> "ScriptedTurn":
        return cls(content=content, tool_calls=list(tool_calls))

    @classmethod
    def failure(cls, error: Exception) -> "ScriptedTurn":
        return cls(error=error)


def tool_call(name: str, arguments: str = "{}", call_id: Optional[str] = None) -> ToolCall:
    """Build a ToolCall with a generated id."""
    return ToolCall(id=call_id or f"call_{uuid.uuid4().hex[:8]}", name=name, arguments=arguments)


def _split(text: str, size: int) -> list[str]:
    return [text[i : i + size] for i in range(0, len(text), size)] or [""]


def _delta_chunk(delta: dict[str, Any], finish_reason: Optional[str] = None) -> dict[str, Any]:
    return {"choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}]}


class ScriptedReasoningService(ReasoningService):
    """
    Reasoning service that answers from a script.

    When the script runs out every further call answers with default_reply.

    Attributes:
        requests: Every request received, for test assertions.
        fragment_size: Characters per content/argument fragment in stream().

    Example:
        >>> service = ScriptedReasoningService([
        ...     ScriptedTurn.calls(tool_call("query_questions", '{"subject":"数学"}')),
        ...     ScriptedTurn.text("找到 3 道题。"),
        ... ])
    """

    def __init__(
        self,
        turns: Iterable[ScriptedTurn] = (),
        default_reply: str = DEFAULT_REPLY,
        fragment_size: int = 4,
    ) -> None:
        self.name = "fake"
        self._turns: deque[ScriptedTurn] = deque(turns)
        self.default_reply = default_reply
        self.fragment_size = max(1, fragment_size)
        self.requests: list[ChatCompletionRequest] = []

    def add(self, *turns: ScriptedTurn) -> None:
        self._turns.extend(turns)

    @property
    def remaining(self) -> int:
        return len(self._turns)

    def _next_turn(self, request: ChatCompletionRequest) -> ScriptedTurn:
        self.requests.append(request)
        if self._turns:
            return self._turns.popleft()
        return ScriptedTurn.text(self.default_reply)

    async def complete(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        turn = self._next_turn(request)
        if turn.error is not None:
            raise turn.error

        tool_calls = [tc.to_openai_format() for tc in turn.tool_calls] or None
        return ChatCompletionResponse(
            id=f"chatcmpl-fake-{uuid.uuid4().hex[:12]}",
            model=request.model,
            choices=[
                Choice(
                    index=0,
                    message=ChoiceMessage(content=turn.content, tool_calls=tool_calls),
                    finish_reason="tool_calls" if tool_calls else "stop",
                )
            ],
        )

    async def stream(self, request: ChatCompletionRequest) -> AsyncIterator[dict[str, Any]]:
        turn = self._next_turn(request)
        if turn.error is not None:
            raise turn.error

        if turn.chunks is not None:
            for chunk in turn.chunks:
                yield chunk
            return

        yield _delta_chunk({"role": "assistant"})
        if turn.content:
            for piece in _split(turn.content, self.fragment_size):
                yield _delta_chunk({"content": piece})

        for index, tc in enumerate(turn.tool_calls):
            yield _delta_chunk(
                {
                    "tool_calls": [
                        {
                            "index": index,
                            "id": tc.id,
                            "type": "function",
                            "function": {"name": tc.name, "arguments": ""},
                        }
                    ]
                }
            )
            for piece in _split(tc.arguments, self.fragment_size):
                yield _delta_chunk(
                    {"tool_calls": [{"index": index, "function": {"arguments": piece}}]}
                )

        yield _delta_chunk({}, finish_reason="tool_calls" if turn.tool_calls else "stop")
