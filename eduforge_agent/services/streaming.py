"""
Streaming Adapter - Incremental agent turns

StreamingAgent runs the same control flow as AgentLoop but requests
incremental delivery from the reasoning service and yields StreamEvents as
an async generator. The transport (the SSE route) drains the generator; the
adapter itself knows nothing about HTTP.

Event order: session first, then any of content / tool_call / tool_result /
confirm, then exactly one of done or error.

Closing the generator (client disconnect) closes the upstream stream, which
releases the reasoning-service connection. That path raises GeneratorExit or
CancelledError inside the generator and is never reported as an error event.
"""

from contextlib import aclosing
from typing import Any, AsyncIterator, Optional

from eduforge_agent.core.exceptions import AgentException, ArgumentParseError, ErrorCode
from eduforge_agent.models.domain import ChatMessage, ToolCall, UserIdentity, new_tool_call_id
from eduforge_agent.models.responses import StreamEvent
from eduforge_agent.observability.logging import get_logger
from eduforge_agent.observability.metrics import record_iteration_limit, record_turn
from eduforge_agent.providers.resolver import ResolvedReasoning
from eduforge_agent.services.agent import AgentRuntime, describe_pending_action
from eduforge_agent.services.prompts import DEGRADED_REPLY

logger = get_logger(__name__)


class ToolCallAccumulator:
    """
    Reassembles tool calls from streamed fragments.

    Fragments are keyed by their positional index; id, function name and
    argument pieces are concatenated per index in arrival order. Some
    providers repeat the complete id in every fragment, so an id fragment
    equal to the id accumulated so far is not appended again.

    Example:
        >>> acc = ToolCallAccumulator()
        >>> acc.add({"index": 0, "id": "call_1", "function": {"name": "f", "arguments": '{"a":1'}})
        >>> acc.add({"index": 0, "function": {"arguments": ',"b":2}'}})
        >>> acc.finalize()[0].arguments
        '{"a":1,"b":2}'
    """

    def __init__(self) -> None:
        self._parts: dict[int, dict[str, str]] = {}

    def add(self, fragment: dict[str, Any]) -> None:
        index = fragment.get("index")
        if not isinstance(index, int):
            index = 0
        part = self._parts.setdefault(index, {"id": "", "name": "", "arguments": ""})

        call_id = fragment.get("id")
        if call_id and call_id != part["id"]:
            part["id"] += call_id

        function = fragment.get("function") or {}
        if function.get("name"):
            part["name"] += function["name"]
        if function.get("arguments"):
            part["arguments"] += function["arguments"]

    def __len__(self) -> int:
        return len(self._parts)

    def finalize(self) -> list[ToolCall]:
        """
        Build the tool calls in index order.

        Fragments that never received a function name are discarded; calls
        without an id get a generated one.
        """
        calls: list[ToolCall] = []
        for index in sorted(self._parts):
            part = self._parts[index]
            if not part["name"]:
                logger.warning("tool_call_fragment_without_name", index=index)
                continue
            calls.append(
                ToolCall(
                    id=part["id"] or new_tool_call_id(),
                    name=part["name"],
                    arguments=part["arguments"],
                )
            )
        return calls


def error_event(message: str, code: str) -> StreamEvent:
    return StreamEvent(event="error", data={"error": message, "code": code})


def _display_params(call: ToolCall) -> Any:
    """Arguments for the tool_call event; the raw string if they do not parse."""
    try:
        return call.parse_arguments()
    except ArgumentParseError:
        return call.arguments


class StreamingAgent(AgentRuntime):
    """
    Streaming agent: one request, a sequence of StreamEvents.

    Example:
        >>> async for event in agent.stream(user, "帮我出3道一元二次方程的题"):
        ...     print(event.render())
    """

    async def stream(
        self, user: UserIdentity, message: str, session_id: Optional[str] = None
    ) -> AsyncIterator[StreamEvent]:
        """
        Run one agent turn, yielding events as they happen.

        Never raises for turn failures: they become a final error event.
        """
        record_turn("stream")
        try:
            reasoning = self.resolver.resolve(user.school_id)
            session = await self.resolve_session(user, message, session_id)
        except AgentException as e:
            logger.warning("stream_session_unavailable", error=e.message, code=e.code)
            yield error_event(e.message, e.code)
            return
        except Exception as e:
            logger.exception("stream_session_failed")
            yield error_event(str(e), ErrorCode.AGENT_ERROR.value)
            return

        yield StreamEvent(event="session", data={"sessionId": session.id})

        log = logger.bind(session_id=session.id, user_id=user.user_id, role=user.role)
        try:
            async with aclosing(self._run(user, message, session.id, reasoning)) as events:
                async for event in events:
                    yield event
        except AgentException as e:
            log.warning("stream_turn_failed", error=e.message, code=e.code)
            yield error_event(e.message, e.code)
        except Exception as e:
            log.exception("stream_turn_crashed")
            yield error_event(str(e) or type(e).__name__, ErrorCode.AGENT_ERROR.value)

    async def _run(
        self, user: UserIdentity, message: str, session_id: str, reasoning: ResolvedReasoning
    ) -> AsyncIterator[StreamEvent]:
        log = logger.bind(session_id=session_id, user_id=user.user_id)
        log.info("agent_turn_started", mode="stream")

        await self.conversations.append_message(session_id, ChatMessage.user(message))
        messages = await self.prepare_messages(user, session_id)
        done = StreamEvent(event="done", data={"sessionId": session_id})

        for iteration in range(self.max_iterations):
            content_parts: list[str] = []
            accumulator = ToolCallAccumulator()
            request = self.build_request(messages, user.role, reasoning.model, stream=True)

            async with aclosing(reasoning.service.stream(request)) as chunks:
                async for chunk in chunks:
                    for choice in chunk.get("choices") or []:
                        delta = choice.get("delta") or {}
                        text = delta.get("content")
                        if text:
                            content_parts.append(text)
                            yield StreamEvent(event="content", data={"text": text})
                        for fragment in delta.get("tool_calls") or []:
                            accumulator.add(fragment)

            content = "".join(content_parts)
            calls = accumulator.finalize()
            if not calls:
                await self.record_assistant(session_id, messages, content)
                log.info("agent_turn_completed", iterations=iteration + 1)
                yield done
                return

            await self.record_assistant(session_id, messages, content or None, calls)
            for position, call in enumerate(calls):
                yield StreamEvent(
                    event="tool_call", data={"name": call.name, "params": _display_params(call)}
                )
                outcome = await self.run_tool_call(user, session_id, call, messages)
                if outcome.pending_action is not None:
                    dropped = [c.name for c in calls[position + 1 :]]
                    if dropped:
                        log.info("tool_calls_dropped_after_confirmation", tools=dropped)
                    descriptor = describe_pending_action(outcome.pending_action)
                    yield StreamEvent(
                        event="confirm", data=descriptor.model_dump(by_alias=True, mode="json")
                    )
                    yield done
                    return
                yield StreamEvent(
                    event="tool_result",
                    data={"name": call.name, "result": outcome.result.to_event_payload()},
                )

        log.warning("agent_iteration_limit_reached", max_iterations=self.max_iterations)
        record_iteration_limit("stream")
        yield StreamEvent(event="content", data={"text": DEGRADED_REPLY})
        yield done
