"""
Pending Action Store - Confirmation-gated tool calls

Pending actions are created by the agent loop and resolved by the
confirmation resolver. Two mechanisms keep resolution at-most-once:

1. claim(): SET NX on a per-action claim key. Exactly one caller wins the
   right to move an action out of PENDING (and so to run the tool).
2. transition(): WATCH/MULTI update guarded by the stored status being
   PENDING, so a record can reach at most one terminal state.

Records are kept for record_retention_seconds, well past expires_at, so a
late confirm still finds the action and can mark it EXPIRED.

Pattern: Repository pattern
Pattern: Optimistic locking (WATCH/MULTI/EXEC)
"""

import logging
import uuid
from datetime import timedelta
from typing import Any, Optional

from redis.asyncio import Redis
from redis.exceptions import WatchError

from eduforge_agent.core.exceptions import ActionNotPendingError, StoreError
from eduforge_agent.models.domain import PendingAction, PendingActionStatus, utcnow

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "chat:"
DEFAULT_RETENTION_SECONDS = 7 * 24 * 3600

# WATCH conflicts on a single action are rare; give up after a few
MAX_TRANSITION_ATTEMPTS = 5


class PendingActionStore:
    """
    Redis-based storage for pending actions.

    Example:
        >>> store = PendingActionStore(redis_client=client)
        >>> action = await store.create("s1", "u1", "generate_questions", {...}, "preview", 600)
        >>> if await store.claim(action.id):
        ...     await store.transition(action.id, PendingActionStatus.CONFIRMED)
    """

    def __init__(
        self,
        redis_client: Redis,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        retention_seconds: int = DEFAULT_RETENTION_SECONDS,
    ) -> None:
        self._redis: Redis = redis_client
        self._prefix: str = key_prefix
        self._retention_seconds: int = retention_seconds

    def _action_key(self, action_id: str) -> str:
        return f"{self._prefix}action:{action_id}"

    def _claim_key(self, action_id: str) -> str:
        return f"{self._prefix}action:{action_id}:claim"

    async def create(
        self,
        session_id: str,
        user_id: str,
        tool_name: str,
        parameters: dict[str, Any],
        preview: str,
        ttl_seconds: int,
    ) -> PendingAction:
        """
        Create a PENDING action that can be confirmed for ttl_seconds.

        Raises:
            StoreError: If the write fails.
        """
        now = utcnow()
        action = PendingAction(
            id=uuid.uuid4().hex,
            session_id=session_id,
            user_id=user_id,
            tool_name=tool_name,
            parameters=parameters,
            preview=preview,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )
        try:
            await self._redis.set(
                self._action_key(action.id),
                action.model_dump_json(),
                ex=max(self._retention_seconds, ttl_seconds),
            )
        except Exception as e:
            raise StoreError(f"Failed to create pending action: {e}") from e

        logger.info(f"Created pending action {action.id} for tool {tool_name}")
        return action

    async def get(self, action_id: str) -> Optional[PendingAction]:
        """
        Get an action by id regardless of owner or status.

        Raises:
            StoreError: If the read fails.
        """
        try:
            raw = await self._redis.get(self._action_key(action_id))
        except Exception as e:
            raise StoreError(f"Failed to get pending action {action_id}: {e}") from e
        if raw is None:
            return None
        return PendingAction.model_validate_json(raw)

    async def get_pending(self, action_id: str, user_id: str) -> Optional[PendingAction]:
        """
        Get an action only if it belongs to user_id and is still PENDING.

        Returns:
            The action, or None on any mismatch.
        """
        action = await self.get(action_id)
        if action is None:
            return None
        if action.user_id != user_id or action.status is not PendingActionStatus.PENDING:
            return None
        return action

    async def claim(self, action_id: str) -> bool:
        """
        Try to take the exclusive right to resolve an action.

        Returns:
            True for exactly one caller per action (until released).
        """
        try:
            won = await self._redis.set(
                self._claim_key(action_id), "1", nx=True, ex=self._retention_seconds
            )
        except Exception as e:
            raise StoreError(f"Failed to claim pending action {action_id}: {e}") from e
        return bool(won)

    async def release(self, action_id: str) -> None:
        """Drop a claim that did not lead to a terminal state."""
        try:
            await self._redis.delete(self._claim_key(action_id))
        except Exception as e:
            raise StoreError(f"Failed to release pending action {action_id}: {e}") from e

    async def transition(
        self, action_id: str, status: PendingActionStatus
    ) -> PendingAction:
        """
        Move an action from PENDING to a terminal status.

        Args:
            action_id: The action to update.
            status: Target terminal status.

        Returns:
            The updated action (resolved_at set).

        Raises:
            ActionNotPendingError: If the action is missing or no longer PENDING.
            StoreError: If Redis fails or the update keeps conflicting.
        """
        if status is PendingActionStatus.PENDING:
            raise ValueError("Cannot transition an action back to PENDING")

        key = self._action_key(action_id)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                for _ in range(MAX_TRANSITION_ATTEMPTS):
                    try:
                        await pipe.watch(key)
                        raw = await pipe.get(key)
                        if raw is None:
                            raise ActionNotPendingError(action_id)
                        action = PendingAction.model_validate_json(raw)
                        if action.status is not PendingActionStatus.PENDING:
                            raise ActionNotPendingError(action_id)

                        updated = action.model_copy(
                            update={"status": status, "resolved_at": utcnow()}
                        )
                        pipe.multi()
                        pipe.set(key, updated.model_dump_json(), ex=self._retention_seconds)
                        await pipe.execute()
                        logger.info(f"Pending action {action_id} -> {status.value}")
                        return updated
                    except WatchError:
                        logger.debug(f"Concurrent update on pending action {action_id}, retrying")
                        continue
        except ActionNotPendingError:
            raise
        except Exception as e:
            raise StoreError(f"Failed to update pending action {action_id}: {e}") from e

        raise StoreError(f"Pending action {action_id} kept changing during update")
