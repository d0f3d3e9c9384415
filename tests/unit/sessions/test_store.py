"""
Tests for ConversationStore (fakeredis)
"""

import asyncio

import pytest

from eduforge_agent.core.exceptions import SessionNotFoundError, StoreError
from eduforge_agent.models.domain import ChatMessage, ToolCall, ToolFailure, ToolSuccess
from eduforge_agent.sessions.store import ConversationStore


class TestSessions:
    @pytest.mark.asyncio
    async def test_create_and_get(self, conversations: ConversationStore) -> None:
        session = await conversations.create_session("u-1", "第一次对话")

        loaded = await conversations.get_session(session.id, "u-1")

        assert loaded is not None
        assert loaded.id == session.id
        assert loaded.title == "第一次对话"

    @pytest.mark.asyncio
    async def test_foreign_session_is_invisible(self, conversations: ConversationStore) -> None:
        session = await conversations.create_session("u-1", "mine")

        assert await conversations.get_session(session.id, "u-2") is None
        assert await conversations.get_session("no-such-id", "u-1") is None

    @pytest.mark.asyncio
    async def test_list_most_recently_updated_first(self, conversations: ConversationStore) -> None:
        first = await conversations.create_session("u-1", "first")
        await asyncio.sleep(0.01)
        second = await conversations.create_session("u-1", "second")
        await asyncio.sleep(0.01)
        await conversations.append_message(first.id, ChatMessage.user("bump"))
        await conversations.create_session("u-2", "someone else")

        sessions = await conversations.list_sessions("u-1")

        assert [s.id for s in sessions] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_list_respects_limit(self, conversations: ConversationStore) -> None:
        for i in range(3):
            await conversations.create_session("u-1", f"s{i}")

        assert len(await conversations.list_sessions("u-1", limit=2)) == 2

    @pytest.mark.asyncio
    async def test_list_for_user_without_sessions(self, conversations: ConversationStore) -> None:
        assert await conversations.list_sessions("nobody") == []


class TestMessages:
    @pytest.mark.asyncio
    async def test_history_is_chronological(self, conversations: ConversationStore) -> None:
        """Appending m1..mN and loading history yields m1..mN in order."""
        session = await conversations.create_session("u-1", "t")
        texts = [f"m{i}" for i in range(1, 8)]
        for text in texts:
            await conversations.append_message(session.id, ChatMessage.user(text))

        recent = await conversations.load_recent_messages(session.id, limit=20)
        everything = await conversations.get_all_messages(session.id, "u-1")

        assert [m.content for m in recent] == texts
        assert [m.content for m in everything] == texts

    @pytest.mark.asyncio
    async def test_recent_window_keeps_newest_in_order(
        self, conversations: ConversationStore
    ) -> None:
        session = await conversations.create_session("u-1", "t")
        for i in range(1, 11):
            await conversations.append_message(session.id, ChatMessage.user(f"m{i}"))

        recent = await conversations.load_recent_messages(session.id, limit=3)

        assert [m.content for m in recent] == ["m8", "m9", "m10"]

    @pytest.mark.asyncio
    async def test_append_assigns_ids_and_bumps_session(
        self, conversations: ConversationStore
    ) -> None:
        session = await conversations.create_session("u-1", "t")
        await asyncio.sleep(0.01)

        stored = await conversations.append_message(session.id, ChatMessage.user("hi"))
        reloaded = await conversations.get_session(session.id, "u-1")

        assert stored.id
        assert stored.session_id == session.id
        assert reloaded.updated_at > session.updated_at

    @pytest.mark.asyncio
    async def test_append_to_unknown_session(self, conversations: ConversationStore) -> None:
        with pytest.raises(SessionNotFoundError):
            await conversations.append_message("missing", ChatMessage.user("hi"))

    @pytest.mark.asyncio
    async def test_tool_messages_round_trip_as_variants(
        self, conversations: ConversationStore
    ) -> None:
        session = await conversations.create_session("u-1", "t")
        call = ToolCall(id="call_1", name="lookup", arguments='{"query":"函数"}')
        await conversations.append_message(session.id, ChatMessage.assistant(None, [call]))
        await conversations.append_message(
            session.id, ChatMessage.tool("call_1", ToolSuccess(result={"n": 1}))
        )
        await conversations.append_message(
            session.id, ChatMessage.tool("call_2", ToolFailure(error="permission denied", code="PERMISSION_DENIED"))
        )

        assistant, success, failure = await conversations.get_all_messages(session.id, "u-1")

        assert assistant.tool_calls == [call]
        assert isinstance(success.tool_result, ToolSuccess)
        assert success.tool_call_id == "call_1"
        assert isinstance(failure.tool_result, ToolFailure)
        assert failure.tool_result.code == "PERMISSION_DENIED"

    @pytest.mark.asyncio
    async def test_get_all_messages_is_ownership_scoped(
        self, conversations: ConversationStore
    ) -> None:
        session = await conversations.create_session("u-1", "t")

        with pytest.raises(SessionNotFoundError):
            await conversations.get_all_messages(session.id, "u-2")


class TestFailures:
    @pytest.mark.asyncio
    async def test_redis_failure_becomes_store_error(self) -> None:
        class BrokenRedis:
            async def get(self, key: str) -> None:
                raise ConnectionError("redis down")

        store = ConversationStore(BrokenRedis())

        with pytest.raises(StoreError):
            await store.get_session("s-1", "u-1")
