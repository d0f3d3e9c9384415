"""
Confirmation Resolver - Resolves deferred tool calls

confirm() and cancel() are the only code paths that move a PendingAction
out of PENDING. Both first win the action's claim, so of two concurrent
resolutions exactly one proceeds and the tool runs at most once.

Unknown, foreign and already resolved actions all raise the same
ActionNotPendingError.
"""

from typing import Any

from eduforge_agent.core.exceptions import (
    ActionExpiredError,
    ActionNotPendingError,
    ArgumentParseError,
    PermissionDeniedError,
    ToolExecutionError,
    ToolNotFoundError,
)
from eduforge_agent.models.domain import PendingActionStatus, ToolContext, UserIdentity
from eduforge_agent.models.responses import ConfirmResult
from eduforge_agent.observability.logging import get_logger
from eduforge_agent.observability.metrics import record_pending_action
from eduforge_agent.sessions.actions import PendingActionStore
from eduforge_agent.tools.executor import ToolExecutor
from eduforge_agent.tools.registry import ToolRegistry

logger = get_logger(__name__)


class ConfirmationResolver:
    """
    Confirm or cancel pending actions on behalf of their owner.

    Example:
        >>> resolver = ConfirmationResolver(registry, executor, actions)
        >>> result = await resolver.confirm(action_id, user)
        >>> result.success
        True
    """

    def __init__(
        self,
        registry: ToolRegistry,
        executor: ToolExecutor,
        actions: PendingActionStore,
        backend: Any = None,
    ) -> None:
        self.registry = registry
        self.executor = executor
        self.actions = actions
        self.backend = backend

    async def confirm(self, action_id: str, user: UserIdentity) -> ConfirmResult:
        """
        Execute a pending action after the user approved it.

        Args:
            action_id: The pending action.
            user: The confirming user; must own the action.

        Returns:
            ConfirmResult with the tool's result.

        Raises:
            ActionNotPendingError: Unknown, foreign, resolved, or claimed by a
                concurrent request.
            ActionExpiredError: Past expires_at (the action becomes EXPIRED).
            ToolNotFoundError: The tool is no longer registered (action stays PENDING).
            PermissionDeniedError: The user's role may not run the tool
                (action stays PENDING).
            ToolExecutionError: The tool failed (the action becomes FAILED).
        """
        log = logger.bind(action_id=action_id, user_id=user.user_id)

        action = await self.actions.get_pending(action_id, user.user_id)
        if action is None:
            raise ActionNotPendingError(action_id)
        if not await self.actions.claim(action_id):
            log.info("confirm_lost_claim")
            raise ActionNotPendingError(action_id)

        if action.is_expired():
            await self.actions.transition(action_id, PendingActionStatus.EXPIRED)
            record_pending_action(PendingActionStatus.EXPIRED.value)
            log.info("pending_action_expired", expires_at=action.expires_at.isoformat())
            raise ActionExpiredError(action_id)

        try:
            tool = self.registry.get(action.tool_name)
            if not self.registry.can_invoke(user.role, tool.name):
                raise PermissionDeniedError(user.role, tool.name)
        except (ToolNotFoundError, PermissionDeniedError) as e:
            await self.actions.release(action_id)
            log.warning("confirm_rejected", tool=action.tool_name, code=e.code)
            raise

        context = ToolContext(
            user_id=user.user_id,
            role=user.role,
            school_id=user.school_id,
            session_id=action.session_id,
            backend=self.backend,
        )
        try:
            result = await self.executor.execute(tool, action.parameters, context)
        except (ToolExecutionError, ArgumentParseError) as e:
            await self.actions.transition(action_id, PendingActionStatus.FAILED)
            record_pending_action(PendingActionStatus.FAILED.value)
            log.warning("pending_action_failed", tool=tool.name, error=e.message)
            if isinstance(e, ToolExecutionError):
                raise
            raise ToolExecutionError(e.message, tool_name=tool.name) from e

        await self.actions.transition(action_id, PendingActionStatus.CONFIRMED)
        record_pending_action(PendingActionStatus.CONFIRMED.value)
        log.info("pending_action_confirmed", tool=tool.name)
        return ConfirmResult(success=True, result=result)

    async def cancel(self, action_id: str, user_id: str) -> bool:
        """
        Cancel a pending action. Never executes the tool.

        Returns:
            True if this call moved the action to CANCELLED, False if there
            was nothing to cancel.
        """
        action = await self.actions.get_pending(action_id, user_id)
        if action is None:
            return False
        if not await self.actions.claim(action_id):
            return False
        try:
            await self.actions.transition(action_id, PendingActionStatus.CANCELLED)
        except ActionNotPendingError:
            return False
        record_pending_action(PendingActionStatus.CANCELLED.value)
        logger.info("pending_action_cancelled", action_id=action_id, user_id=user_id)
        return True
