"""
Request Models

Pydantic models for the caller-facing API and for requests sent to the
reasoning service.

Anti-Patterns Avoided:
- Optional fields use Optional[T] with explicit None default
- Validation errors have clear context messages
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# =============================================================================
# Caller-facing Requests
# =============================================================================


class ChatRequest(BaseModel):
    """
    Body of POST /api/chat.

    Attributes:
        message: The user's message text.
        session_id: Existing session to continue (sessionId on the wire).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: str = Field(..., description="User message text")
    session_id: Optional[str] = Field(default=None, description="Existing session id")

    @field_validator("message")
    @classmethod
    def validate_message(cls, v: str) -> str:
        """Reject empty or whitespace-only messages."""
        if not v.strip():
            raise ValueError("message must not be empty")
        return v


# =============================================================================
# Reasoning Service Requests
# =============================================================================


class ReasoningMessage(BaseModel):
    """
    A message in the reasoning service's chat format.

    Attributes:
        role: Message role (system, user, assistant, tool)
        content: Message content (can be None for tool calls)
        tool_calls: Tool calls of an assistant message
        tool_call_id: Tool call a tool message answers
    """

    role: Literal["system", "user", "assistant", "tool"]
    content: Optional[str] = None
    tool_calls: Optional[list[dict[str, Any]]] = None
    tool_call_id: Optional[str] = None


class ChatCompletionRequest(BaseModel):
    """
    Chat completion request sent to an OpenAI-compatible endpoint.

    Required Fields:
        model: Model identifier
        messages: Ordered conversation messages

    Optional Fields:
        temperature: Sampling temperature (0-2)
        tools: Function schemas; omitted from the payload when empty
        stream: Whether to request incremental delivery
    """

    model: str = Field(..., description="Model identifier")
    messages: list[ReasoningMessage] = Field(..., description="Conversation messages")
    temperature: Optional[float] = Field(
        default=None, ge=0.0, le=2.0, description="Sampling temperature"
    )
    tools: Optional[list[dict[str, Any]]] = Field(
        default=None, description="Available tools"
    )
    stream: bool = Field(default=False, description="Enable streaming")

    @field_validator("messages")
    @classmethod
    def validate_messages_not_empty(cls, v: list[ReasoningMessage]) -> list[ReasoningMessage]:
        if not v:
            raise ValueError("messages must contain at least one message")
        return v

    def to_payload(self) -> dict[str, Any]:
        """Build the JSON body, leaving out unset optional fields."""
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [m.model_dump(exclude_none=True) for m in self.messages],
        }
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.tools:
            payload["tools"] = self.tools
        if self.stream:
            payload["stream"] = True
        return payload
