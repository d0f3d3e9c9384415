"""
Tests for AgentLoop (synchronous agent turns).

Scenarios run against fakeredis stores, the scripted reasoning service and
the local tools from conftest.
"""

import pytest
from prometheus_client import REGISTRY

from eduforge_agent.core.exceptions import (
    ReasoningNotConfiguredError,
    ReasoningServiceError,
    SessionNotFoundError,
)
from eduforge_agent.models.domain import (
    PendingActionStatus,
    Role,
    ToolFailure,
    ToolPendingConfirmation,
    ToolSuccess,
    UserIdentity,
)
from eduforge_agent.providers.fake import ScriptedReasoningService, ScriptedTurn, tool_call
from eduforge_agent.providers.resolver import ReasoningServiceResolver, ResolvedReasoning
from eduforge_agent.services.prompts import DEGRADED_REPLY


def tool_call_count(labels: dict[str, str]) -> float:
    return REGISTRY.get_sample_value("eduforge_agent_tool_calls_total", labels) or 0.0


def tool_names(request) -> list[str]:
    return [schema["function"]["name"] for schema in request.tools or []]


async def action_keys(fake_redis) -> list[str]:
    return [k for k in await fake_redis.keys("chat:action:*") if not k.endswith(":claim")]


class TestTextReplies:
    @pytest.mark.asyncio
    async def test_student_review_request_gets_plain_reply(
        self, make_agent, student, conversations, fake_redis
    ) -> None:
        """STUDENT asks for a review; one model call, no tools, no pending action."""
        reasoning = ScriptedReasoningService([ScriptedTurn.text("好的，我们先复习一元二次方程。")])
        agent = make_agent(reasoning)

        reply = await agent.chat(student, "帮我复习错题")

        assert reply.reply == "好的，我们先复习一元二次方程。"
        assert reply.pending_action is None
        assert reply.session_id
        assert len(reasoning.requests) == 1
        assert await action_keys(fake_redis) == []

        stored = await conversations.get_all_messages(reply.session_id, student.user_id)
        assert [(m.role, m.content) for m in stored] == [
            ("user", "帮我复习错题"),
            ("assistant", "好的，我们先复习一元二次方程。"),
        ]

    @pytest.mark.asyncio
    async def test_request_carries_system_prompt_and_role_tools(self, make_agent, student) -> None:
        reasoning = ScriptedReasoningService([ScriptedTurn.text("hi")])

        await make_agent(reasoning, temperature=0.3).chat(student, "你好")

        request = reasoning.requests[0]
        assert request.model == "test-model"
        assert request.temperature == 0.3
        assert request.messages[0].role == "system"
        assert "小明" in request.messages[0].content
        assert tool_names(request) == ["lookup", "explode"]

    @pytest.mark.asyncio
    async def test_new_session_titled_from_message(self, make_agent, student, conversations) -> None:
        agent = make_agent(ScriptedReasoningService([ScriptedTurn.text("ok")]), session_title_length=4)

        reply = await agent.chat(student, "帮我复习错题")

        session = await conversations.get_session(reply.session_id, student.user_id)
        assert session.title == "帮我复习"

    @pytest.mark.asyncio
    async def test_history_replayed_in_order(self, make_agent, student) -> None:
        reasoning = ScriptedReasoningService([ScriptedTurn.text("r1"), ScriptedTurn.text("r2")])
        agent = make_agent(reasoning)

        first = await agent.chat(student, "q1")
        second = await agent.chat(student, "q2", session_id=first.session_id)

        assert second.session_id == first.session_id
        replay = [(m.role, m.content) for m in reasoning.requests[1].messages[1:]]
        assert replay == [("user", "q1"), ("assistant", "r1"), ("user", "q2")]

    @pytest.mark.asyncio
    async def test_history_window_is_bounded(self, make_agent, student) -> None:
        reasoning = ScriptedReasoningService([ScriptedTurn.text(f"r{i}") for i in range(4)])
        agent = make_agent(reasoning, history_limit=3)

        reply = await agent.chat(student, "q0")
        for i in range(1, 4):
            await agent.chat(student, f"q{i}", session_id=reply.session_id)

        replay = [m.content for m in reasoning.requests[-1].messages[1:]]
        assert replay == ["q2", "r2", "q3"]


class TestSessionResolution:
    @pytest.mark.asyncio
    async def test_unknown_session(self, make_agent, student) -> None:
        agent = make_agent(ScriptedReasoningService())

        with pytest.raises(SessionNotFoundError):
            await agent.chat(student, "hi", session_id="nope")

    @pytest.mark.asyncio
    async def test_foreign_session(self, make_agent, student, teacher, conversations) -> None:
        session = await conversations.create_session(teacher.user_id, "teacher's")
        agent = make_agent(ScriptedReasoningService())

        with pytest.raises(SessionNotFoundError):
            await agent.chat(student, "hi", session_id=session.id)

        assert await conversations.get_all_messages(session.id, teacher.user_id) == []


class TestToolCalls:
    @pytest.mark.asyncio
    async def test_tool_result_fed_back_to_model(
        self, make_agent, student, handler_log, conversations
    ) -> None:
        reasoning = ScriptedReasoningService(
            [
                ScriptedTurn.calls(tool_call("lookup", '{"query":"函数"}', "call_1")),
                ScriptedTurn.text("找到 2 道题。"),
            ]
        )

        reply = await make_agent(reasoning).chat(student, "找函数题")

        assert reply.reply == "找到 2 道题。"
        assert handler_log.names() == ["lookup"]
        _, params, context = handler_log.calls[0]
        assert params == {"query": "函数"}
        assert context.user_id == student.user_id
        assert context.role == student.role
        assert context.session_id == reply.session_id

        tool_message = reasoning.requests[1].messages[-1]
        assert tool_message.role == "tool"
        assert tool_message.tool_call_id == "call_1"
        assert '"q1"' in tool_message.content

        stored = await conversations.get_all_messages(reply.session_id, student.user_id)
        assert [m.role for m in stored] == ["user", "assistant", "tool", "assistant"]
        assert isinstance(stored[2].tool_result, ToolSuccess)

    @pytest.mark.asyncio
    async def test_permission_denied_is_a_tool_result(
        self, make_agent, student, handler_log, conversations
    ) -> None:
        reasoning = ScriptedReasoningService(
            [
                ScriptedTurn.calls(tool_call("teacher_report", call_id="call_x")),
                ScriptedTurn.text("抱歉，你没有权限。"),
            ]
        )

        reply = await make_agent(reasoning).chat(student, "看看班级报告")

        assert reply.reply == "抱歉，你没有权限。"
        assert handler_log.calls == []
        stored = await conversations.get_all_messages(reply.session_id, student.user_id)
        result = stored[2].tool_result
        assert isinstance(result, ToolFailure)
        assert result.error == "permission denied"
        assert result.code == "PERMISSION_DENIED"

    @pytest.mark.asyncio
    async def test_unknown_tool_is_denied(self, make_agent, teacher, conversations) -> None:
        reasoning = ScriptedReasoningService(
            [ScriptedTurn.calls(tool_call("drop_database")), ScriptedTurn.text("ok")]
        )

        reply = await make_agent(reasoning).chat(teacher, "x")

        stored = await conversations.get_all_messages(reply.session_id, teacher.user_id)
        assert stored[2].tool_result.code == "PERMISSION_DENIED"

    @pytest.mark.asyncio
    async def test_unknown_tool_names_share_one_metric_label(self, make_agent, teacher) -> None:
        labels = {"tool": "unknown", "outcome": "permission_denied"}
        before = tool_call_count(labels)
        reasoning = ScriptedReasoningService(
            [
                ScriptedTurn.calls(tool_call("drop_database"), tool_call("rm_rf_questions")),
                ScriptedTurn.text("ok"),
            ]
        )

        await make_agent(reasoning).chat(teacher, "x")

        assert tool_call_count(labels) == before + 2
        assert tool_call_count({"tool": "drop_database", "outcome": "permission_denied"}) == 0

    @pytest.mark.asyncio
    async def test_invalid_arguments_recorded_and_turn_continues(
        self, make_agent, teacher, handler_log, conversations
    ) -> None:
        reasoning = ScriptedReasoningService(
            [
                ScriptedTurn.calls(tool_call("lookup", '{"query": ')),
                ScriptedTurn.calls(tool_call("lookup", "[1, 2]")),
                ScriptedTurn.text("参数有误。"),
            ]
        )

        reply = await make_agent(reasoning).chat(teacher, "x")

        assert reply.reply == "参数有误。"
        assert handler_log.calls == []
        stored = await conversations.get_all_messages(reply.session_id, teacher.user_id)
        codes = [m.tool_result.code for m in stored if m.role == "tool"]
        assert codes == ["ARGUMENT_PARSE_ERROR", "ARGUMENT_PARSE_ERROR"]

    @pytest.mark.asyncio
    async def test_failing_tool_does_not_abort_sibling(
        self, make_agent, teacher, handler_log, conversations
    ) -> None:
        """One tool throws in a batch of two; the sibling still runs and the loop continues."""
        reasoning = ScriptedReasoningService(
            [
                ScriptedTurn.calls(
                    tool_call("explode", call_id="call_a"),
                    tool_call("lookup", '{"query":"方程"}', call_id="call_b"),
                ),
                ScriptedTurn.text("第一个工具失败了，第二个成功。"),
            ]
        )

        reply = await make_agent(reasoning).chat(teacher, "两个都查")

        assert reply.reply == "第一个工具失败了，第二个成功。"
        assert handler_log.names() == ["explode", "lookup"]
        assert len(reasoning.requests) == 2

        stored = await conversations.get_all_messages(reply.session_id, teacher.user_id)
        tool_messages = [m for m in stored if m.role == "tool"]
        assert [m.tool_call_id for m in tool_messages] == ["call_a", "call_b"]
        assert isinstance(tool_messages[0].tool_result, ToolFailure)
        assert tool_messages[0].tool_result.code == "TOOL_EXECUTION_ERROR"
        assert "题库服务不可用" in tool_messages[0].tool_result.error
        assert isinstance(tool_messages[1].tool_result, ToolSuccess)

        replayed = reasoning.requests[1].messages[-2:]
        assert [m.tool_call_id for m in replayed] == ["call_a", "call_b"]


class TestConfirmationGate:
    @pytest.mark.asyncio
    async def test_teacher_confirm_required_tool_creates_pending_action(
        self, make_agent, teacher, handler_log, actions, fake_redis, conversations
    ) -> None:
        reasoning = ScriptedReasoningService(
            [ScriptedTurn.calls(tool_call("publish", '{"topic":"一元二次方程","count":3}'))]
        )

        reply = await make_agent(reasoning).chat(teacher, "帮我出3道一元二次方程的题")

        assert handler_log.calls == []
        assert len(reasoning.requests) == 1
        assert len(await action_keys(fake_redis)) == 1

        pending = reply.pending_action
        assert pending is not None
        assert pending.tool_name == "publish"
        assert pending.parameters == {"topic": "一元二次方程", "count": 3}
        assert "AI 自动出题并入库" in pending.preview
        assert '{"topic": "一元二次方程", "count": 3}' in pending.preview
        assert reply.reply == f"操作需要确认：{pending.preview}"

        action = await actions.get(pending.action_id)
        assert action.status is PendingActionStatus.PENDING
        assert action.session_id == reply.session_id
        assert action.user_id == teacher.user_id

        stored = await conversations.get_all_messages(reply.session_id, teacher.user_id)
        assert isinstance(stored[-1].tool_result, ToolPendingConfirmation)
        assert stored[-1].tool_result.action_id == pending.action_id

    @pytest.mark.asyncio
    async def test_arguments_missing_required_fields_are_still_deferred(
        self, make_agent, teacher, handler_log, actions
    ) -> None:
        reasoning = ScriptedReasoningService(
            [ScriptedTurn.calls(tool_call("publish", '{"topic":"一元二次方程"}'))]
        )

        reply = await make_agent(reasoning).chat(teacher, "出题")

        assert handler_log.calls == []
        assert reply.pending_action is not None
        assert reply.pending_action.parameters == {"topic": "一元二次方程"}
        action = await actions.get(reply.pending_action.action_id)
        assert action.status is PendingActionStatus.PENDING

    @pytest.mark.asyncio
    async def test_non_json_arguments_to_confirm_required_tool_are_rejected(
        self, make_agent, teacher, fake_redis
    ) -> None:
        reasoning = ScriptedReasoningService(
            [
                ScriptedTurn.calls(tool_call("publish", "{topic: 函数")),
                ScriptedTurn.text("参数有误"),
            ]
        )

        reply = await make_agent(reasoning).chat(teacher, "出题")

        assert reply.pending_action is None
        assert reply.reply == "参数有误"
        assert await action_keys(fake_redis) == []

    @pytest.mark.asyncio
    async def test_calls_after_confirm_required_tool_never_run(
        self, make_agent, teacher, handler_log, conversations
    ) -> None:
        reasoning = ScriptedReasoningService(
            [
                ScriptedTurn.calls(
                    tool_call("lookup", call_id="c1"),
                    tool_call("publish", '{"topic":"函数","count":1}', call_id="c2"),
                    tool_call("teacher_report", call_id="c3"),
                    tool_call("lookup", call_id="c4"),
                )
            ]
        )

        reply = await make_agent(reasoning).chat(teacher, "x")

        assert reply.pending_action is not None
        assert handler_log.names() == ["lookup"]
        assert len(reasoning.requests) == 1
        stored = await conversations.get_all_messages(reply.session_id, teacher.user_id)
        assert [m.tool_call_id for m in stored if m.role == "tool"] == ["c1", "c2"]

    @pytest.mark.asyncio
    async def test_next_turn_replays_only_answered_calls(self, make_agent, teacher) -> None:
        reasoning = ScriptedReasoningService(
            [
                ScriptedTurn.calls(
                    tool_call("publish", '{"topic":"函数","count":1}', call_id="c1"),
                    tool_call("lookup", call_id="c2"),
                ),
                ScriptedTurn.text("好的"),
            ]
        )
        agent = make_agent(reasoning)

        first = await agent.chat(teacher, "出题")
        await agent.chat(teacher, "算了", session_id=first.session_id)

        replay = reasoning.requests[1].messages
        assistant = next(m for m in replay if m.role == "assistant")
        assert [tc["id"] for tc in assistant.tool_calls] == ["c1"]


class TestLimitsAndFailures:
    @pytest.mark.asyncio
    async def test_iteration_cap_gives_degraded_reply(
        self, make_agent, teacher, handler_log, conversations
    ) -> None:
        reasoning = ScriptedReasoningService(
            [ScriptedTurn.calls(tool_call("lookup")) for _ in range(5)]
        )

        reply = await make_agent(reasoning, max_iterations=3).chat(teacher, "x")

        assert reply.reply == DEGRADED_REPLY
        assert reply.pending_action is None
        assert len(reasoning.requests) == 3
        assert handler_log.count("lookup") == 3
        stored = await conversations.get_all_messages(reply.session_id, teacher.user_id)
        assert all(m.content != DEGRADED_REPLY for m in stored)

    @pytest.mark.asyncio
    async def test_reasoning_error_propagates(self, make_agent, teacher, conversations) -> None:
        reasoning = ScriptedReasoningService(
            [ScriptedTurn.failure(ReasoningServiceError("upstream 500", provider="fake", status_code=500))]
        )

        with pytest.raises(ReasoningServiceError):
            await make_agent(reasoning).chat(teacher, "x")

        sessions = await conversations.list_sessions(teacher.user_id)
        assert len(sessions) == 1
        stored = await conversations.get_all_messages(sessions[0].id, teacher.user_id)
        assert [m.role for m in stored] == ["user"]


class TestReasoningPerSchool:
    @pytest.mark.asyncio
    async def test_school_service_and_model_are_used(self, make_agent, teacher) -> None:
        default = ScriptedReasoningService([ScriptedTurn.text("default")])
        school = ScriptedReasoningService([ScriptedTurn.text("学校配置的回复")])
        resolver = ReasoningServiceResolver(default=ResolvedReasoning(default, "default-model"))
        resolver.register("sch-1", school, "school-model")

        reply = await make_agent(default, resolver=resolver).chat(teacher, "你好")

        assert reply.reply == "学校配置的回复"
        assert default.requests == []
        assert school.requests[0].model == "school-model"

    @pytest.mark.asyncio
    async def test_other_schools_fall_back_to_default(self, make_agent) -> None:
        default = ScriptedReasoningService([ScriptedTurn.text("default")])
        resolver = ReasoningServiceResolver(default=ResolvedReasoning(default, "default-model"))
        resolver.register("sch-1", ScriptedReasoningService(), "school-model")
        other = UserIdentity(user_id="t-9", role=Role.TEACHER, school_id="sch-2")

        reply = await make_agent(default, resolver=resolver).chat(other, "你好")

        assert reply.reply == "default"
        assert default.requests[0].model == "default-model"

    @pytest.mark.asyncio
    async def test_unconfigured_school_fails_before_anything_is_stored(
        self, make_agent, teacher, conversations
    ) -> None:
        agent = make_agent(ScriptedReasoningService(), resolver=ReasoningServiceResolver())

        with pytest.raises(ReasoningNotConfiguredError):
            await agent.chat(teacher, "你好")

        assert await conversations.list_sessions(teacher.user_id) == []
