"""
Agent Loop - Synchronous agent turns

AgentRuntime holds what the synchronous and streaming agents share: session
resolution, history replay, request building and the per-tool-call logic
(permission check, argument parsing, confirmation gate, execution). AgentLoop
drives a bounded loop of reasoning calls and returns one ChatReply.

Per tool call, in the order the model returned them:
1. can_invoke() false      -> ToolFailure(PERMISSION_DENIED), continue
2. non-JSON arguments      -> ToolFailure(ARGUMENT_PARSE_ERROR), continue
3. confirm_required        -> PendingAction created with the arguments as
                              proposed, turn ends; the rest of the batch is
                              never executed. The schema is checked on confirm.
4. otherwise               -> execute; ToolSuccess or
                              ToolFailure(TOOL_EXECUTION_ERROR), continue

Pattern: Service Layer (orchestrates domain operations)
Pattern: Dependency Injection (registry, executor, stores, reasoning service)
"""

from dataclasses import dataclass
from typing import Any, Optional

from eduforge_agent.core.exceptions import (
    ArgumentParseError,
    ErrorCode,
    ReasoningServiceError,
    SessionNotFoundError,
    ToolExecutionError,
)
from eduforge_agent.models.domain import (
    ChatMessage,
    ChatSession,
    PendingAction,
    PendingActionStatus,
    ToolCall,
    ToolContext,
    ToolDefinition,
    ToolFailure,
    ToolPendingConfirmation,
    ToolResultPayload,
    ToolSuccess,
    UserIdentity,
)
from eduforge_agent.models.requests import ChatCompletionRequest, ReasoningMessage
from eduforge_agent.models.responses import ChatReply, PendingActionDescriptor
from eduforge_agent.observability.logging import get_logger
from eduforge_agent.observability.metrics import (
    record_iteration_limit,
    record_pending_action,
    record_tool_call,
    record_turn,
)
from eduforge_agent.providers.base import ReasoningService
from eduforge_agent.providers.resolver import ReasoningServiceResolver, ResolvedReasoning
from eduforge_agent.services.prompts import (
    DEGRADED_REPLY,
    build_preview,
    build_system_prompt,
    confirmation_reply,
    history_to_messages,
    session_title,
)
from eduforge_agent.sessions.actions import PendingActionStore
from eduforge_agent.sessions.store import ConversationStore
from eduforge_agent.tools.executor import ToolExecutor
from eduforge_agent.tools.registry import ToolRegistry

logger = get_logger(__name__)

PERMISSION_DENIED_MESSAGE = "permission denied"
UNKNOWN_TOOL_LABEL = "unknown"


@dataclass
class ToolCallOutcome:
    """
    What happened to one tool call.

    Attributes:
        call: The model's tool call.
        result: The tool result persisted for it.
        pending_action: Set when the call was deferred for confirmation.
    """

    call: ToolCall
    result: ToolResultPayload
    pending_action: Optional[PendingAction] = None


def describe_pending_action(action: PendingAction) -> PendingActionDescriptor:
    return PendingActionDescriptor(
        action_id=action.id,
        tool_name=action.tool_name,
        parameters=action.parameters,
        preview=action.preview,
        expires_at=action.expires_at,
    )


class AgentRuntime:
    """
    Shared machinery of the synchronous and streaming agents.

    Attributes:
        registry: Tool registry (the permission authority).
        executor: Runs resolved tools.
        conversations: Session and message store.
        actions: Pending action store.
        resolver: Picks the reasoning service and model per school; built
            around reasoning and model when not given.
        backend: Plugin backend handle passed to tools via ToolContext.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        executor: ToolExecutor,
        conversations: ConversationStore,
        actions: PendingActionStore,
        reasoning: Optional[ReasoningService] = None,
        model: str = "",
        temperature: float = 0.7,
        max_iterations: int = 5,
        history_limit: int = 20,
        pending_action_ttl_seconds: int = 600,
        session_title_length: int = 50,
        backend: Any = None,
        resolver: Optional[ReasoningServiceResolver] = None,
    ) -> None:
        self.registry = registry
        self.executor = executor
        self.conversations = conversations
        self.actions = actions
        if resolver is None:
            default = ResolvedReasoning(reasoning, model) if reasoning is not None else None
            resolver = ReasoningServiceResolver(default=default)
        self.resolver = resolver
        self.temperature = temperature
        self.max_iterations = max_iterations
        self.history_limit = history_limit
        self.pending_action_ttl_seconds = pending_action_ttl_seconds
        self.session_title_length = session_title_length
        self.backend = backend

    # =========================================================================
    # Session and Context
    # =========================================================================

    async def resolve_session(
        self, user: UserIdentity, message: str, session_id: Optional[str]
    ) -> ChatSession:
        """
        Load the caller's session or create a new one.

        Raises:
            SessionNotFoundError: If session_id is unknown or not owned.
        """
        if session_id:
            session = await self.conversations.get_session(session_id, user.user_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            return session
        return await self.conversations.create_session(
            user.user_id, session_title(message, self.session_title_length)
        )

    async def prepare_messages(
        self, user: UserIdentity, session_id: str
    ) -> list[ReasoningMessage]:
        """System prompt followed by the replayed history window."""
        history = await self.conversations.load_recent_messages(session_id, self.history_limit)
        system = ReasoningMessage(role="system", content=build_system_prompt(user))
        return [system, *history_to_messages(history)]

    def build_request(
        self, messages: list[ReasoningMessage], role: str, model: str, stream: bool = False
    ) -> ChatCompletionRequest:
        tools = self.registry.schemas_for_role(role)
        return ChatCompletionRequest(
            model=model,
            messages=list(messages),
            temperature=self.temperature,
            tools=tools or None,
            stream=stream,
        )

    def tool_context(self, user: UserIdentity, session_id: str) -> ToolContext:
        return ToolContext(
            user_id=user.user_id,
            role=user.role,
            school_id=user.school_id,
            session_id=session_id,
            backend=self.backend,
        )

    async def record_assistant(
        self,
        session_id: str,
        messages: list[ReasoningMessage],
        content: Optional[str],
        tool_calls: Optional[list[ToolCall]] = None,
    ) -> None:
        """Persist an assistant message and append it to the working list."""
        stored = ChatMessage.assistant(content, tool_calls)
        await self.conversations.append_message(session_id, stored)
        messages.append(ReasoningMessage(**stored.to_reasoning_message()))

    # =========================================================================
    # Per Tool Call
    # =========================================================================

    def tool_label(self, name: str) -> str:
        """Metric label for a requested tool; model-invented names collapse."""
        return name if self.registry.has(name) else UNKNOWN_TOOL_LABEL

    async def run_tool_call(
        self,
        user: UserIdentity,
        session_id: str,
        call: ToolCall,
        messages: list[ReasoningMessage],
    ) -> ToolCallOutcome:
        """
        Apply the permission, argument, confirmation and execution rules.

        The resulting tool message is persisted and appended to messages.
        Store errors propagate and end the turn.
        """
        log = logger.bind(session_id=session_id, tool=call.name, tool_call_id=call.id)
        pending_action: Optional[PendingAction] = None
        result: ToolResultPayload

        if not self.registry.can_invoke(user.role, call.name):
            log.warning("tool_permission_denied", role=user.role)
            record_tool_call(self.tool_label(call.name), "permission_denied")
            result = ToolFailure(
                error=PERMISSION_DENIED_MESSAGE, code=ErrorCode.PERMISSION_DENIED.value
            )
        else:
            tool = self.registry.get(call.name)
            try:
                params = call.parse_arguments()
            except ArgumentParseError as e:
                log.warning("tool_arguments_invalid", error=e.message)
                record_tool_call(tool.name, "invalid_arguments")
                result = ToolFailure(error=e.message, code=ErrorCode.ARGUMENT_PARSE_ERROR.value)
            else:
                if tool.confirm_required:
                    preview = build_preview(tool, params)
                    pending_action = await self.actions.create(
                        session_id=session_id,
                        user_id=user.user_id,
                        tool_name=tool.name,
                        parameters=params,
                        preview=preview,
                        ttl_seconds=self.pending_action_ttl_seconds,
                    )
                    log.info("tool_pending_confirmation", action_id=pending_action.id)
                    record_tool_call(tool.name, "pending_confirmation")
                    record_pending_action(PendingActionStatus.PENDING.value)
                    result = ToolPendingConfirmation(action_id=pending_action.id, preview=preview)
                else:
                    result = await self._execute(log, tool, params, user, session_id)

        tool_message = ChatMessage.tool(call.id, result)
        await self.conversations.append_message(session_id, tool_message)
        messages.append(ReasoningMessage(**tool_message.to_reasoning_message()))
        return ToolCallOutcome(call=call, result=result, pending_action=pending_action)

    async def _execute(
        self, log: Any, tool: ToolDefinition, params: dict[str, Any], user: UserIdentity, session_id: str
    ) -> ToolResultPayload:
        try:
            value = await self.executor.execute(tool, params, self.tool_context(user, session_id))
        except ArgumentParseError as e:
            log.warning("tool_arguments_invalid", error=e.message)
            record_tool_call(tool.name, "invalid_arguments")
            return ToolFailure(error=e.message, code=ErrorCode.ARGUMENT_PARSE_ERROR.value)
        except ToolExecutionError as e:
            log.warning("tool_execution_failed", error=e.message)
            record_tool_call(tool.name, "error")
            return ToolFailure(error=e.message, code=ErrorCode.TOOL_EXECUTION_ERROR.value)
        log.info("tool_executed")
        record_tool_call(tool.name, "success")
        return ToolSuccess(result=value)


class AgentLoop(AgentRuntime):
    """
    Synchronous agent: one request, one ChatReply.

    Example:
        >>> loop = AgentLoop(registry, executor, conversations, actions, reasoning, model="deepseek-chat")
        >>> reply = await loop.chat(user, "帮我复习错题")
        >>> reply.reply
    """

    async def chat(
        self, user: UserIdentity, message: str, session_id: Optional[str] = None
    ) -> ChatReply:
        """
        Run one agent turn.

        Args:
            user: Acting identity.
            message: The user's message.
            session_id: Existing session to continue, or None for a new one.

        Returns:
            ChatReply with the model's final text, the confirmation prompt
            plus a pending action, or the degraded reply when the iteration
            cap is reached.

        Raises:
            SessionNotFoundError: Unknown or foreign session_id.
            ReasoningNotConfiguredError: No reasoning service for the
                user's school and no default (nothing is stored).
            ReasoningServiceError: The reasoning service failed.
        """
        record_turn("sync")
        reasoning = self.resolver.resolve(user.school_id)
        session = await self.resolve_session(user, message, session_id)
        log = logger.bind(session_id=session.id, user_id=user.user_id, role=user.role)
        log.info("agent_turn_started", mode="sync")

        await self.conversations.append_message(session.id, ChatMessage.user(message))
        messages = await self.prepare_messages(user, session.id)

        for iteration in range(self.max_iterations):
            request = self.build_request(messages, user.role, reasoning.model)
            response = await reasoning.service.complete(request)
            assistant = response.message
            if assistant is None:
                raise ReasoningServiceError(
                    "Reasoning service returned no choices", provider=reasoning.service.name
                )

            calls = assistant.parsed_tool_calls()
            if not calls:
                await self.record_assistant(session.id, messages, assistant.content)
                log.info("agent_turn_completed", iterations=iteration + 1)
                return ChatReply(session_id=session.id, reply=assistant.content or "")

            await self.record_assistant(session.id, messages, assistant.content, calls)
            for position, call in enumerate(calls):
                outcome = await self.run_tool_call(user, session.id, call, messages)
                if outcome.pending_action is not None:
                    dropped = [c.name for c in calls[position + 1 :]]
                    if dropped:
                        log.info("tool_calls_dropped_after_confirmation", tools=dropped)
                    action = outcome.pending_action
                    return ChatReply(
                        session_id=session.id,
                        reply=confirmation_reply(action.preview),
                        pending_action=describe_pending_action(action),
                    )

        log.warning("agent_iteration_limit_reached", max_iterations=self.max_iterations)
        record_iteration_limit("sync")
        return ChatReply(session_id=session.id, reply=DEGRADED_REPLY)
