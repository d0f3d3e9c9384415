"""Redis-backed conversation and pending action stores."""

from eduforge_agent.sessions.actions import PendingActionStore
from eduforge_agent.sessions.store import ConversationStore

__all__ = ["ConversationStore", "PendingActionStore"]
