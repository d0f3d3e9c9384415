"""
Response Models

Pydantic models for reasoning service responses and for the caller-facing
API. API models serialize with camelCase aliases.
"""

import json
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from eduforge_agent.models.domain import ChatMessage, ChatSession, ToolCall


class CamelModel(BaseModel):
    """Base for API models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Reasoning Service Responses
# =============================================================================


class Usage(BaseModel):
    """Token usage statistics."""

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)


class ChoiceMessage(BaseModel):
    """
    Message in a completion choice.

    Attributes:
        role: Always "assistant" for completions
        content: Generated text (None when only tool calls were produced)
        tool_calls: Requested tool calls in OpenAI format
    """

    role: Literal["assistant"] = "assistant"
    content: Optional[str] = None
    tool_calls: Optional[list[dict[str, Any]]] = None

    def parsed_tool_calls(self) -> list[ToolCall]:
        return [ToolCall.from_openai_format(tc) for tc in self.tool_calls or []]


class Choice(BaseModel):
    """A completion choice."""

    index: int = 0
    message: ChoiceMessage
    finish_reason: Optional[str] = None


class ChatCompletionResponse(BaseModel):
    """
    Chat completion response from the reasoning service.

    Only the first choice is used by the agent.
    """

    id: Optional[str] = None
    model: Optional[str] = None
    choices: list[Choice] = Field(default_factory=list)
    usage: Optional[Usage] = None

    @property
    def message(self) -> Optional[ChoiceMessage]:
        return self.choices[0].message if self.choices else None


# =============================================================================
# Agent Results
# =============================================================================


class PendingActionDescriptor(CamelModel):
    """
    What the caller needs to render a confirmation dialog.

    Attributes:
        action_id: Id to pass to confirm/cancel.
        tool_name: Tool awaiting confirmation.
        parameters: Arguments the model proposed.
        preview: Human-readable preview.
        expires_at: Last moment a confirm is accepted.
    """

    action_id: str
    tool_name: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    preview: str
    expires_at: datetime


class ChatReply(CamelModel):
    """Result of a synchronous agent turn."""

    session_id: str
    reply: str
    pending_action: Optional[PendingActionDescriptor] = None


class ConfirmResult(CamelModel):
    success: bool = True
    result: Any = None


class CancelResult(CamelModel):
    success: bool = True


# =============================================================================
# Session Views
# =============================================================================


class SessionSummary(CamelModel):
    id: str
    title: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_session(cls, session: ChatSession) -> "SessionSummary":
        return cls(
            id=session.id,
            title=session.title,
            created_at=session.created_at,
            updated_at=session.updated_at,
        )


class MessageView(CamelModel):
    """A stored message as shown to the owning user."""

    id: Optional[str] = None
    role: str
    content: Optional[str] = None
    tool_calls: Optional[list[dict[str, Any]]] = None
    tool_result: Any = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def from_message(cls, message: ChatMessage) -> "MessageView":
        return cls(
            id=message.id,
            role=message.role,
            content=message.content,
            tool_calls=(
                [tc.to_openai_format() for tc in message.tool_calls]
                if message.tool_calls
                else None
            ),
            tool_result=(
                message.tool_result.to_event_payload() if message.tool_result else None
            ),
            metadata=message.metadata,
            created_at=message.created_at,
        )


# =============================================================================
# Stream Events
# =============================================================================

StreamEventType = Literal[
    "session", "content", "tool_call", "tool_result", "confirm", "done", "error"
]


class StreamEvent(BaseModel):
    """
    One caller-visible event of a streamed agent turn.

    Attributes:
        event: Event type.
        data: JSON-serializable payload.
    """

    event: StreamEventType
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    def render(self) -> str:
        """Render as a server-sent event block."""
        payload = json.dumps(self.data, ensure_ascii=False, default=str)
        return f"event: {self.event}\ndata: {payload}\n\n"
