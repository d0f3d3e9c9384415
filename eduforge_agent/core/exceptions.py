"""
Custom exceptions for the EduForge agent service.

This module provides a hierarchy of custom exceptions for the agent engine.
All exceptions inherit from AgentException and include error codes for
consistent error handling and API responses.

Recovery rules:
- SessionNotFoundError, ReasoningServiceError, ActionNotPendingError and
  ActionExpiredError are surfaced to the caller.
- PermissionDeniedError, ToolExecutionError and ArgumentParseError raised
  inside an agent turn are converted into tool-result messages and the turn
  continues.
"""

from enum import Enum
from typing import Any


# =============================================================================
# Error Codes Enum
# =============================================================================


class ErrorCode(str, Enum):
    """
    Error codes for agent exceptions.

    These codes identify error types across the API, the event stream,
    persisted tool results and logs.
    """

    AGENT_ERROR = "AGENT_ERROR"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    REASONING_SERVICE_ERROR = "REASONING_SERVICE_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
    TOOL_EXECUTION_ERROR = "TOOL_EXECUTION_ERROR"
    ARGUMENT_PARSE_ERROR = "ARGUMENT_PARSE_ERROR"
    ACTION_NOT_PENDING = "ACTION_NOT_PENDING"
    ACTION_EXPIRED = "ACTION_EXPIRED"
    STORE_ERROR = "STORE_ERROR"
    REASONING_NOT_CONFIGURED = "REASONING_NOT_CONFIGURED"


# =============================================================================
# Base Exception
# =============================================================================


class AgentException(Exception):
    """
    Base exception for all agent errors.

    Attributes:
        message: Human-readable error message.
        error_code: Machine-readable error code from ErrorCode enum.
    """

    def __init__(
        self,
        message: str,
        error_code: str = ErrorCode.AGENT_ERROR,
        **kwargs: Any,
    ) -> None:
        """
        Initialize the exception.

        Args:
            message: Human-readable error message.
            error_code: Machine-readable error code.
            **kwargs: Additional attributes to set on the exception.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code

        for key, value in kwargs.items():
            setattr(self, key, value)

    @property
    def code(self) -> str:
        """Error code as a plain string."""
        if isinstance(self.error_code, Enum):
            return self.error_code.value
        return str(self.error_code)


# =============================================================================
# Conversation Errors
# =============================================================================


class SessionNotFoundError(AgentException):
    """
    Raised when a session id is unknown or not owned by the caller.

    Attributes:
        session_id: ID of the requested session.
    """

    def __init__(
        self,
        session_id: str,
        error_code: str = ErrorCode.SESSION_NOT_FOUND,
        **kwargs: Any,
    ) -> None:
        super().__init__(f"Session not found: {session_id}", error_code, **kwargs)
        self.session_id = session_id


class StoreError(AgentException):
    """Raised when a Redis-backed store operation fails."""

    def __init__(
        self,
        message: str,
        error_code: str = ErrorCode.STORE_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code, **kwargs)


# =============================================================================
# Reasoning Service Errors
# =============================================================================


class ReasoningServiceError(AgentException):
    """
    Exception for reasoning service failures.

    Raised on non-success transport responses and connection failures.
    Never retried inside the agent loop.

    Attributes:
        provider: Name of the provider (e.g., "deepseek", "qwen").
        status_code: HTTP status code from the provider API (if applicable).
    """

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: int | None = None,
        error_code: str = ErrorCode.REASONING_SERVICE_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code, **kwargs)
        self.provider = provider
        self.status_code = status_code


class ReasoningNotConfiguredError(ReasoningServiceError):
    """
    Raised when neither the caller's school nor the service default has a
    reasoning service configured.

    Attributes:
        school_id: School the lookup was made for (None for users without one).
    """

    def __init__(
        self,
        school_id: str | None = None,
        error_code: str = ErrorCode.REASONING_NOT_CONFIGURED,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            "未配置 AI 服务，请在管理后台设置", provider="none", error_code=error_code, **kwargs
        )
        self.school_id = school_id


# =============================================================================
# Tool Errors
# =============================================================================


class ToolNotFoundError(AgentException):
    """Raised when a requested tool is not found in the registry."""

    def __init__(
        self,
        tool_name: str,
        error_code: str = ErrorCode.TOOL_NOT_FOUND,
        **kwargs: Any,
    ) -> None:
        super().__init__(f"Tool not found: {tool_name}", error_code, **kwargs)
        self.tool_name = tool_name


class PermissionDeniedError(AgentException):
    """
    Raised when a role may not invoke a tool.

    Attributes:
        role: The acting role.
        tool_name: The tool that was requested.
    """

    def __init__(
        self,
        role: str,
        tool_name: str,
        error_code: str = ErrorCode.PERMISSION_DENIED,
        **kwargs: Any,
    ) -> None:
        super().__init__("permission denied", error_code, **kwargs)
        self.role = role
        self.tool_name = tool_name


class ToolExecutionError(AgentException):
    """
    Exception for tool execution failures (handler raised or timed out).

    Attributes:
        tool_name: Name of the tool that failed.
        tool_call_id: ID of the tool call (for correlation).
    """

    def __init__(
        self,
        message: str,
        tool_name: str,
        tool_call_id: str | None = None,
        error_code: str = ErrorCode.TOOL_EXECUTION_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code, **kwargs)
        self.tool_name = tool_name
        self.tool_call_id = tool_call_id


class ArgumentParseError(AgentException):
    """
    Raised when the model supplied non-JSON or schema-invalid arguments.

    Attributes:
        tool_name: Name of the tool the arguments were meant for.
        field: Name of the offending field (schema violations only).
    """

    def __init__(
        self,
        message: str,
        tool_name: str | None = None,
        field: str | None = None,
        error_code: str = ErrorCode.ARGUMENT_PARSE_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code, **kwargs)
        self.tool_name = tool_name
        self.field = field


# =============================================================================
# Pending Action Errors
# =============================================================================


class ActionNotPendingError(AgentException):
    """
    Raised when a pending action is unknown, not owned or already resolved.

    Unknown, foreign and resolved actions are reported identically.
    """

    def __init__(
        self,
        action_id: str,
        error_code: str = ErrorCode.ACTION_NOT_PENDING,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            f"Action not found or not pending: {action_id}", error_code, **kwargs
        )
        self.action_id = action_id


class ActionExpiredError(AgentException):
    """Raised when a confirm arrives after the action's expiry timestamp."""

    def __init__(
        self,
        action_id: str,
        error_code: str = ErrorCode.ACTION_EXPIRED,
        **kwargs: Any,
    ) -> None:
        super().__init__(f"Action expired: {action_id}", error_code, **kwargs)
        self.action_id = action_id
