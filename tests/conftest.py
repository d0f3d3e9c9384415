"""
Pytest configuration and shared fixtures.

Test doubles follow the FakeRepository idea: real implementations with
in-memory backends instead of mocks.
- fakeredis stands in for Redis (conversations, pending actions)
- ScriptedReasoningService stands in for the model
- a small set of local tools records every handler invocation
"""

from typing import Any, Callable

import fakeredis
import fakeredis.aioredis
import pytest

from eduforge_agent.models.domain import Role, ToolContext, ToolDefinition, UserIdentity
from eduforge_agent.providers.base import ReasoningService
from eduforge_agent.services.agent import AgentLoop, AgentRuntime
from eduforge_agent.services.confirmation import ConfirmationResolver
from eduforge_agent.services.streaming import StreamingAgent
from eduforge_agent.sessions.actions import PendingActionStore
from eduforge_agent.sessions.store import ConversationStore
from eduforge_agent.tools.executor import ToolExecutor
from eduforge_agent.tools.registry import ToolRegistry


# =============================================================================
# Identities
# =============================================================================


@pytest.fixture
def teacher() -> UserIdentity:
    return UserIdentity(user_id="t-1", role=Role.TEACHER, name="王老师", school_id="sch-1")


@pytest.fixture
def student() -> UserIdentity:
    return UserIdentity(user_id="s-1", role=Role.STUDENT, name="小明", school_id="sch-1")


# =============================================================================
# Redis-backed stores
# =============================================================================


@pytest.fixture
def fake_redis():
    """A fresh, isolated fake Redis server per test."""
    return fakeredis.aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def conversations(fake_redis) -> ConversationStore:
    return ConversationStore(fake_redis)


@pytest.fixture
def actions(fake_redis) -> PendingActionStore:
    return PendingActionStore(fake_redis)


# =============================================================================
# Local tools
# =============================================================================


class HandlerLog:
    """Records (tool name, params, context) for every handler invocation."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any], ToolContext]] = []

    def names(self) -> list[str]:
        return [name for name, _, _ in self.calls]

    def count(self, name: str) -> int:
        return self.names().count(name)


@pytest.fixture
def handler_log() -> HandlerLog:
    return HandlerLog()


@pytest.fixture
def local_tools(handler_log: HandlerLog) -> dict[str, ToolDefinition]:
    """
    Tools covering each path of the per-call rules:

    - lookup: TEACHER and STUDENT, runs immediately
    - teacher_report: TEACHER only
    - publish: TEACHER only, confirm-required
    - explode: TEACHER and STUDENT, always raises
    """

    async def lookup(params: dict[str, Any], context: ToolContext) -> Any:
        handler_log.calls.append(("lookup", params, context))
        return {"items": ["q1", "q2"], "query": params.get("query")}

    async def teacher_report(params: dict[str, Any], context: ToolContext) -> Any:
        handler_log.calls.append(("teacher_report", params, context))
        return {"average": 87.5}

    async def publish(params: dict[str, Any], context: ToolContext) -> Any:
        handler_log.calls.append(("publish", params, context))
        return {"published": True, "count": params.get("count")}

    async def explode(params: dict[str, Any], context: ToolContext) -> Any:
        handler_log.calls.append(("explode", params, context))
        raise RuntimeError("题库服务不可用")

    return {
        "lookup": ToolDefinition(
            name="lookup",
            description="查询题目",
            parameters={"type": "object", "properties": {"query": {"type": "string"}}},
            roles={Role.TEACHER, Role.STUDENT},
            handler=lookup,
        ),
        "teacher_report": ToolDefinition(
            name="teacher_report",
            description="查询班级报告",
            roles={Role.TEACHER},
            handler=teacher_report,
        ),
        "publish": ToolDefinition(
            name="publish",
            description="AI 自动出题并入库",
            parameters={
                "type": "object",
                "properties": {
                    "topic": {"type": "string"},
                    "count": {"type": "number"},
                },
                "required": ["topic", "count"],
            },
            roles={Role.TEACHER},
            confirm_required=True,
            handler=publish,
        ),
        "explode": ToolDefinition(
            name="explode",
            description="总是失败",
            roles={Role.TEACHER, Role.STUDENT},
            handler=explode,
        ),
    }


@pytest.fixture
def registry(local_tools: dict[str, ToolDefinition]) -> ToolRegistry:
    registry = ToolRegistry()
    for tool in local_tools.values():
        registry.register(tool)
    return registry


@pytest.fixture
def executor() -> ToolExecutor:
    return ToolExecutor(timeout=5)


# =============================================================================
# Agent factories
# =============================================================================


@pytest.fixture
def make_agent(
    registry: ToolRegistry,
    executor: ToolExecutor,
    conversations: ConversationStore,
    actions: PendingActionStore,
) -> Callable[..., AgentRuntime]:
    """Build an AgentLoop or StreamingAgent over the shared test stores."""

    def factory(
        reasoning: ReasoningService, cls: type = AgentLoop, **options: Any
    ) -> AgentRuntime:
        return cls(
            registry=registry,
            executor=executor,
            conversations=conversations,
            actions=actions,
            reasoning=reasoning,
            model="test-model",
            **options,
        )

    return factory


@pytest.fixture
def make_streaming_agent(make_agent: Callable[..., AgentRuntime]) -> Callable[..., StreamingAgent]:
    def factory(reasoning: ReasoningService, **options: Any) -> StreamingAgent:
        return make_agent(reasoning, cls=StreamingAgent, **options)

    return factory


@pytest.fixture
def resolver(
    registry: ToolRegistry, executor: ToolExecutor, actions: PendingActionStore
) -> ConfirmationResolver:
    return ConfirmationResolver(registry, executor, actions)
