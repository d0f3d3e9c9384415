"""
Chat Router

Endpoints:
- POST /api/chat                        synchronous agent turn
- GET  /api/chat/stream                 streamed agent turn (text/event-stream)
- GET  /api/chat/sessions               the caller's recent sessions
- GET  /api/chat/sessions/{session_id}  messages of one owned session
- POST /api/chat/confirm/{action_id}    execute a pending action
- POST /api/chat/cancel/{action_id}     cancel a pending action

Errors raised by the services are rendered by the handlers in api/errors.py.
"""

import logging
from contextlib import aclosing
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from eduforge_agent.api.deps import (
    get_agent_loop,
    get_app_settings,
    get_confirmation_resolver,
    get_conversation_store,
    get_current_user,
    get_streaming_agent,
)
from eduforge_agent.core.config import Settings
from eduforge_agent.models.domain import UserIdentity
from eduforge_agent.models.requests import ChatRequest
from eduforge_agent.models.responses import (
    CancelResult,
    ChatReply,
    ConfirmResult,
    MessageView,
    SessionSummary,
)
from eduforge_agent.services.agent import AgentLoop
from eduforge_agent.services.confirmation import ConfirmationResolver
from eduforge_agent.services.streaming import StreamingAgent
from eduforge_agent.sessions.store import ConversationStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["Chat"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.post("", response_model=ChatReply, response_model_exclude_none=True)
async def chat(
    body: ChatRequest,
    user: UserIdentity = Depends(get_current_user),
    agent: AgentLoop = Depends(get_agent_loop),
) -> ChatReply:
    """
    Run one synchronous agent turn.

    Returns the final reply, or the confirmation prompt plus pendingAction
    when a tool needs the user's approval.
    """
    return await agent.chat(user, body.message, body.session_id)


async def _render_events(
    agent: StreamingAgent, user: UserIdentity, message: str, session_id: Optional[str]
) -> AsyncIterator[str]:
    # Closing the agent generator on client abort also closes the
    # reasoning service stream it holds open.
    async with aclosing(agent.stream(user, message, session_id)) as events:
        async for event in events:
            yield event.render()


@router.get("/stream")
async def chat_stream(
    message: str = Query(default=""),
    session_id: Optional[str] = Query(default=None, alias="sessionId"),
    user: UserIdentity = Depends(get_current_user),
    agent: StreamingAgent = Depends(get_streaming_agent),
) -> StreamingResponse:
    """Run one agent turn as server-sent events."""
    if not message.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="message must not be empty")
    return StreamingResponse(
        _render_events(agent, user, message, session_id),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/sessions", response_model=list[SessionSummary])
async def list_sessions(
    user: UserIdentity = Depends(get_current_user),
    store: ConversationStore = Depends(get_conversation_store),
    settings: Settings = Depends(get_app_settings),
) -> list[SessionSummary]:
    sessions = await store.list_sessions(user.user_id, limit=settings.session_list_limit)
    return [SessionSummary.from_session(s) for s in sessions]


@router.get("/sessions/{session_id}", response_model=list[MessageView])
async def get_session_messages(
    session_id: str,
    user: UserIdentity = Depends(get_current_user),
    store: ConversationStore = Depends(get_conversation_store),
) -> list[MessageView]:
    """Messages of an owned session, oldest first."""
    messages = await store.get_all_messages(session_id, user.user_id)
    return [MessageView.from_message(m) for m in messages]


@router.post("/confirm/{action_id}", response_model=ConfirmResult)
async def confirm_action(
    action_id: str,
    user: UserIdentity = Depends(get_current_user),
    resolver: ConfirmationResolver = Depends(get_confirmation_resolver),
) -> ConfirmResult:
    return await resolver.confirm(action_id, user)


@router.post("/cancel/{action_id}", response_model=CancelResult)
async def cancel_action(
    action_id: str,
    user: UserIdentity = Depends(get_current_user),
    resolver: ConfirmationResolver = Depends(get_confirmation_resolver),
) -> CancelResult:
    """Cancel a pending action. Always succeeds, including for unknown ids."""
    cancelled = await resolver.cancel(action_id, user.user_id)
    if not cancelled:
        logger.info(f"Cancel was a no-op for action {action_id}")
    return CancelResult(success=True)
