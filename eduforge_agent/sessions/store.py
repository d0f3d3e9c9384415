"""
Conversation Store - Redis-backed sessions and message log

This module provides durable storage for chat sessions and their messages.

Key layout:
    chat:session:{id}             session JSON
    chat:session:{id}:messages    list of message JSON, append order
    chat:user:{user_id}:sessions  sorted set of session ids scored by updated_at

Every lookup is ownership-scoped: a session id that belongs to another user
behaves exactly like an unknown id.

Pattern: Repository pattern
Pattern: Dependency injection for Redis client
"""

import logging
import uuid
from typing import Optional

from redis.asyncio import Redis

from eduforge_agent.core.exceptions import SessionNotFoundError, StoreError
from eduforge_agent.models.domain import ChatMessage, ChatSession, utcnow

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "chat:"


def _as_str(value: str | bytes) -> str:
    return value.decode() if isinstance(value, bytes) else value


class ConversationStore:
    """
    Redis-based conversation storage.

    Attributes:
        _redis: The Redis client instance.
        _prefix: Prefix for Redis keys.

    Example:
        >>> store = ConversationStore(redis_client=client)
        >>> session = await store.create_session("u1", "帮我复习错题")
        >>> await store.append_message(session.id, ChatMessage.user("帮我复习错题"))
    """

    def __init__(self, redis_client: Redis, key_prefix: str = DEFAULT_KEY_PREFIX) -> None:
        self._redis: Redis = redis_client
        self._prefix: str = key_prefix

    # =========================================================================
    # Keys
    # =========================================================================

    def _session_key(self, session_id: str) -> str:
        return f"{self._prefix}session:{session_id}"

    def _messages_key(self, session_id: str) -> str:
        return f"{self._prefix}session:{session_id}:messages"

    def _user_index_key(self, user_id: str) -> str:
        return f"{self._prefix}user:{user_id}:sessions"

    # =========================================================================
    # Sessions
    # =========================================================================

    async def create_session(self, user_id: str, title: Optional[str] = None) -> ChatSession:
        """
        Create a session owned by user_id.

        Raises:
            StoreError: If the write fails.
        """
        session = ChatSession(id=uuid.uuid4().hex, user_id=user_id, title=title)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.set(self._session_key(session.id), session.model_dump_json())
                pipe.zadd(
                    self._user_index_key(user_id),
                    {session.id: session.updated_at.timestamp()},
                )
                await pipe.execute()
        except Exception as e:
            raise StoreError(f"Failed to create session for {user_id}: {e}") from e

        logger.debug(f"Created session {session.id} for {user_id}")
        return session

    async def _load_session(self, session_id: str) -> Optional[ChatSession]:
        raw = await self._redis.get(self._session_key(session_id))
        if raw is None:
            return None
        return ChatSession.model_validate_json(raw)

    async def get_session(self, session_id: str, user_id: str) -> Optional[ChatSession]:
        """
        Get a session if it exists and belongs to user_id.

        Returns:
            The session, or None for unknown and foreign ids alike.

        Raises:
            StoreError: If the read fails.
        """
        try:
            session = await self._load_session(session_id)
        except Exception as e:
            raise StoreError(f"Failed to get session {session_id}: {e}") from e

        if session is None or session.user_id != user_id:
            return None
        return session

    async def list_sessions(self, user_id: str, limit: int = 50) -> list[ChatSession]:
        """
        List a user's sessions, most recently updated first.

        Raises:
            StoreError: If the read fails.
        """
        try:
            ids = await self._redis.zrevrange(self._user_index_key(user_id), 0, limit - 1)
            if not ids:
                return []
            raws = await self._redis.mget([self._session_key(_as_str(i)) for i in ids])
        except Exception as e:
            raise StoreError(f"Failed to list sessions for {user_id}: {e}") from e

        return [ChatSession.model_validate_json(raw) for raw in raws if raw is not None]

    # =========================================================================
    # Messages
    # =========================================================================

    async def append_message(self, session_id: str, message: ChatMessage) -> ChatMessage:
        """
        Append a message and bump the session's updated timestamp.

        The message push, the session update and the user index re-score run
        in one MULTI/EXEC transaction.

        Args:
            session_id: Target session.
            message: Message to store; id and session_id are assigned here.

        Returns:
            The stored message.

        Raises:
            SessionNotFoundError: If the session does not exist.
            StoreError: If the write fails.
        """
        try:
            session = await self._load_session(session_id)
        except Exception as e:
            raise StoreError(f"Failed to get session {session_id}: {e}") from e
        if session is None:
            raise SessionNotFoundError(session_id)

        now = utcnow()
        stored = message.model_copy(
            update={"id": uuid.uuid4().hex, "session_id": session_id, "created_at": now}
        )
        session = session.model_copy(update={"updated_at": now})

        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.rpush(self._messages_key(session_id), stored.model_dump_json())
                pipe.set(self._session_key(session_id), session.model_dump_json())
                pipe.zadd(self._user_index_key(session.user_id), {session_id: now.timestamp()})
                await pipe.execute()
        except Exception as e:
            raise StoreError(f"Failed to append message to {session_id}: {e}") from e

        return stored

    async def load_recent_messages(self, session_id: str, limit: int) -> list[ChatMessage]:
        """
        Load the last limit messages, oldest first.

        Raises:
            StoreError: If the read fails.
        """
        if limit <= 0:
            return []
        try:
            raws = await self._redis.lrange(self._messages_key(session_id), -limit, -1)
        except Exception as e:
            raise StoreError(f"Failed to load messages for {session_id}: {e}") from e
        return [ChatMessage.model_validate_json(raw) for raw in raws]

    async def get_all_messages(self, session_id: str, user_id: str) -> list[ChatMessage]:
        """
        Load every message of a session owned by user_id, oldest first.

        Raises:
            SessionNotFoundError: If the session is unknown or not owned.
            StoreError: If the read fails.
        """
        session = await self.get_session(session_id, user_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        try:
            raws = await self._redis.lrange(self._messages_key(session_id), 0, -1)
        except Exception as e:
            raise StoreError(f"Failed to load messages for {session_id}: {e}") from e
        return [ChatMessage.model_validate_json(raw) for raw in raws]
