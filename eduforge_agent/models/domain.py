"""
Domain Models - Tools, Conversations and Pending Actions

This module contains the internal domain models used by the tool registry,
the agent loop, the conversation store and the confirmation workflow.

Pattern: Domain models as value objects
Pattern: Pydantic for validation and a single (de)serialization boundary

Note: These models are distinct from the wire models in requests.py and
responses.py. Tool calls and tool results are typed here so that persisted
messages never need ad hoc reparsing.
"""

import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Callable, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from eduforge_agent.core.exceptions import ArgumentParseError, ErrorCode


def utcnow() -> datetime:
    """Current UTC time (single clock for all domain timestamps)."""
    return datetime.now(timezone.utc)


def dump_json(value: Any) -> str:
    """Serialize a value the way it is shown to the model and the user."""
    return json.dumps(value, ensure_ascii=False, default=str)


def new_tool_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:12]}"


# =============================================================================
# Roles and Identity
# =============================================================================


class Role:
    """Role names issued by the platform's auth layer."""

    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    TEACHER = "TEACHER"
    STUDENT = "STUDENT"


class UserIdentity(BaseModel):
    """
    The authenticated caller on whose behalf the agent acts.

    Attributes:
        user_id: Platform user id.
        role: Role name (see Role).
        name: Display name used in the system prompt.
        school_id: Optional organization/tenant id.
    """

    user_id: str
    role: str
    name: Optional[str] = None
    school_id: Optional[str] = None

    model_config = {"frozen": True}


# =============================================================================
# ToolContext
# =============================================================================


class ToolContext(BaseModel):
    """
    Per-invocation context handed to a tool handler.

    Built fresh for every execution; never persisted.

    Attributes:
        user_id: Acting user id.
        role: Acting role.
        school_id: Optional tenant id.
        session_id: Conversation the call originated from.
        backend: Handle to the plugin backend (the tools' persistence layer).
    """

    user_id: str
    role: str
    school_id: Optional[str] = None
    session_id: str
    backend: Any = None

    model_config = {"arbitrary_types_allowed": True, "frozen": True}


# =============================================================================
# ToolDefinition
# =============================================================================


class ToolDefinition(BaseModel):
    """
    A registered tool: metadata, permission tags and the execution callable.

    The handler can be sync or async and is called as
    ``handler(params, context)``. It is never projected into the schema
    sent to the reasoning service; see to_schema().

    Attributes:
        name: Unique tool identifier.
        description: Human-readable description (also used in previews).
        parameters: JSON Schema for the tool's input parameters.
        roles: Roles permitted to invoke the tool.
        confirm_required: Whether execution must be confirmed by the user.
        handler: Callable that executes the tool.

    Example:
        >>> tool = ToolDefinition(
        ...     name="query_questions",
        ...     description="查询题库中的题目",
        ...     parameters={"type": "object", "properties": {}},
        ...     roles={"TEACHER", "STUDENT"},
        ...     handler=query_questions,
        ... )
    """

    name: str = Field(..., min_length=1, description="Unique tool identifier")
    description: str = Field(..., description="Human-readable description")
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON Schema for input parameters",
    )
    roles: frozenset[str] = Field(..., description="Roles allowed to invoke the tool")
    confirm_required: bool = Field(
        default=False, description="Whether a human must confirm execution"
    )
    handler: Callable[..., Any] = Field(..., description="Tool execution callable")

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    @field_validator("roles", mode="before")
    @classmethod
    def normalize_roles(cls, v: Any) -> frozenset[str]:
        """Accept any iterable of role names."""
        if isinstance(v, str):
            return frozenset({v})
        return frozenset(str(role) for role in v)

    def to_schema(self) -> dict[str, Any]:
        """
        Project into the reasoning service's function schema.

        Returns:
            {"type": "function", "function": {name, description, parameters}}
        """
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


# =============================================================================
# ToolCall
# =============================================================================


class ToolCall(BaseModel):
    """
    A tool invocation requested by the reasoning service.

    Arguments are kept exactly as the model produced them (a JSON string);
    parse_arguments() is the only place they are decoded.

    Attributes:
        id: Tool call identifier assigned by the reasoning service.
        name: Name of the tool to execute.
        arguments: Raw argument string.
    """

    id: str = Field(..., description="Unique tool call identifier")
    name: str = Field(..., description="Name of tool to execute")
    arguments: str = Field(default="", description="Raw JSON argument string")

    def parse_arguments(self) -> dict[str, Any]:
        """
        Decode the argument string.

        An empty string is treated as an empty object.

        Returns:
            The decoded arguments.

        Raises:
            ArgumentParseError: If the string is not a JSON object.
        """
        if not self.arguments.strip():
            return {}
        try:
            parsed = json.loads(self.arguments)
        except json.JSONDecodeError as e:
            raise ArgumentParseError(
                f"Invalid JSON arguments for {self.name}: {e.msg}",
                tool_name=self.name,
            ) from e
        if not isinstance(parsed, dict):
            raise ArgumentParseError(
                f"Arguments for {self.name} must be a JSON object",
                tool_name=self.name,
            )
        return parsed

    @classmethod
    def from_openai_format(cls, tool_call: dict[str, Any]) -> "ToolCall":
        """
        Parse a ToolCall from the OpenAI tool_calls format.

        Args:
            tool_call: {"id": ..., "type": "function",
                        "function": {"name": ..., "arguments": "<json>"}}
        """
        function = tool_call.get("function") or {}
        arguments = function.get("arguments") or ""
        if not isinstance(arguments, str):
            arguments = dump_json(arguments)
        return cls(
            id=tool_call.get("id") or new_tool_call_id(),
            name=function.get("name") or "",
            arguments=arguments,
        )

    def to_openai_format(self) -> dict[str, Any]:
        """Convert back into the OpenAI tool_calls entry shape."""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


# =============================================================================
# Tool Results (tagged variants)
# =============================================================================


class ToolSuccess(BaseModel):
    """A tool executed and returned a result."""

    kind: Literal["success"] = "success"
    result: Any = None

    def to_content(self) -> str:
        return dump_json(self.result)

    def to_event_payload(self) -> Any:
        return self.result


class ToolFailure(BaseModel):
    """
    A tool call that produced an error instead of a result.

    The code keeps permission denials, argument errors and tool crashes
    distinguishable even when the message text is similar.
    """

    kind: Literal["error"] = "error"
    error: str
    code: str = ErrorCode.TOOL_EXECUTION_ERROR.value

    def to_content(self) -> str:
        return dump_json({"error": self.error, "code": self.code})

    def to_event_payload(self) -> Any:
        return {"error": self.error, "code": self.code}


class ToolPendingConfirmation(BaseModel):
    """A confirm-required tool call that was deferred to the user."""

    kind: Literal["pending_confirmation"] = "pending_confirmation"
    action_id: str
    preview: str

    def to_content(self) -> str:
        return dump_json(
            {
                "status": "PENDING_CONFIRMATION",
                "actionId": self.action_id,
                "preview": self.preview,
            }
        )

    def to_event_payload(self) -> Any:
        return {
            "status": "PENDING_CONFIRMATION",
            "actionId": self.action_id,
            "preview": self.preview,
        }


ToolResultPayload = Annotated[
    Union[ToolSuccess, ToolFailure, ToolPendingConfirmation],
    Field(discriminator="kind"),
]


# =============================================================================
# Conversation Models
# =============================================================================


class ChatSession(BaseModel):
    """
    A conversation owned by one user.

    Attributes:
        id: Session id.
        user_id: Owning user.
        title: Display title (first characters of the first message).
        created_at: Creation timestamp.
        updated_at: Bumped on every appended message.
    """

    id: str
    user_id: str
    title: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ChatMessage(BaseModel):
    """
    A persisted message in a conversation.

    Tool-role messages carry the originating tool call id in metadata so that
    history can be replayed into the reasoning service's message format.

    Attributes:
        id: Message id (assigned by the store).
        session_id: Owning session.
        role: user, assistant or tool.
        content: Text content (None for assistant messages with only tool calls).
        tool_calls: Tool calls requested by an assistant message.
        tool_result: Result payload of a tool message.
        metadata: Free-form metadata (tool_call_id for tool messages).
        created_at: Creation timestamp.
    """

    id: Optional[str] = None
    session_id: Optional[str] = None
    role: Literal["user", "assistant", "tool"]
    content: Optional[str] = None
    tool_calls: Optional[list[ToolCall]] = None
    tool_result: Optional[ToolResultPayload] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def tool_call_id(self) -> Optional[str]:
        """Tool call id a tool-role message answers."""
        return self.metadata.get("tool_call_id")

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(role="user", content=content)

    @classmethod
    def assistant(
        cls, content: Optional[str], tool_calls: Optional[list[ToolCall]] = None
    ) -> "ChatMessage":
        return cls(role="assistant", content=content or None, tool_calls=tool_calls or None)

    @classmethod
    def tool(cls, tool_call_id: str, result: ToolResultPayload) -> "ChatMessage":
        return cls(
            role="tool",
            tool_result=result,
            metadata={"tool_call_id": tool_call_id},
        )

    def to_reasoning_message(self) -> dict[str, Any]:
        """
        Rebuild the reasoning-service message for this stored message.

        Returns:
            OpenAI-format message dict. Tool messages become
            {"role": "tool", "content": <result>, "tool_call_id": <id>}.
        """
        if self.role == "tool":
            return {
                "role": "tool",
                "content": self.tool_result.to_content() if self.tool_result else "",
                "tool_call_id": self.tool_call_id,
            }
        message: dict[str, Any] = {"role": self.role, "content": self.content or ""}
        if self.tool_calls:
            message["tool_calls"] = [tc.to_openai_format() for tc in self.tool_calls]
        return message


# =============================================================================
# Pending Actions
# =============================================================================


class PendingActionStatus(str, Enum):
    """
    Lifecycle of a confirmation-gated tool call.

    PENDING is the only non-terminal state.
    """

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self is not PendingActionStatus.PENDING


class PendingAction(BaseModel):
    """
    A deferred tool invocation awaiting explicit user approval.

    Created by the agent loop, mutated only by the confirmation resolver.

    Attributes:
        id: Action id.
        session_id: Conversation the call came from.
        user_id: Requesting user.
        tool_name: Tool to execute on confirmation.
        parameters: Arguments exactly as the model proposed them.
        preview: Human-readable preview string.
        status: Current lifecycle state.
        created_at: Creation timestamp.
        resolved_at: When a terminal state was reached.
        expires_at: After this instant a confirm expires the action.
    """

    id: str
    session_id: str
    user_id: str
    tool_name: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    preview: str
    status: PendingActionStatus = PendingActionStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True once now is past expires_at."""
        return (now or utcnow()) > self.expires_at
