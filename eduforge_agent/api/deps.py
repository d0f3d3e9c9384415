"""
API Dependencies

FastAPI dependency functions for the API layer. Services are built once in
the application lifespan and stored on app.state; these functions hand them
to the routes, and tests replace them via app.dependency_overrides.

Identity is asserted by the upstream auth layer through trusted headers.
"""

import logging
from typing import Optional

from fastapi import Header, HTTPException, Request, status

from eduforge_agent.core.config import Settings
from eduforge_agent.models.domain import Role, UserIdentity
from eduforge_agent.services.agent import AgentLoop
from eduforge_agent.services.confirmation import ConfirmationResolver
from eduforge_agent.services.streaming import StreamingAgent
from eduforge_agent.sessions.store import ConversationStore

logger = logging.getLogger(__name__)

KNOWN_ROLES = frozenset({Role.SUPER_ADMIN, Role.ADMIN, Role.TEACHER, Role.STUDENT})


# =============================================================================
# Identity
# =============================================================================


def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
    x_school_id: Optional[str] = Header(default=None),
) -> UserIdentity:
    """
    Build the acting identity from the auth layer's headers.

    Raises:
        HTTPException 401: X-User-Id or X-User-Role is missing, or the
            role is not one of the known roles.
    """
    if not x_user_id or not x_user_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing user identity",
        )
    role = x_user_role.strip().upper()
    if role not in KNOWN_ROLES:
        logger.warning(f"Rejected unknown role: {x_user_role}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown user role",
        )
    return UserIdentity(
        user_id=x_user_id,
        role=role,
        name=x_user_name,
        school_id=x_school_id,
    )


# =============================================================================
# Services
# =============================================================================


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_agent_loop(request: Request) -> AgentLoop:
    return request.app.state.agent_loop


def get_streaming_agent(request: Request) -> StreamingAgent:
    return request.app.state.streaming_agent


def get_confirmation_resolver(request: Request) -> ConfirmationResolver:
    return request.app.state.confirmation_resolver


def get_conversation_store(request: Request) -> ConversationStore:
    return request.app.state.conversations
