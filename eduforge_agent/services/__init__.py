"""Agent services: synchronous loop, streaming adapter and confirmation resolver."""

from eduforge_agent.services.agent import AgentLoop, AgentRuntime
from eduforge_agent.services.confirmation import ConfirmationResolver
from eduforge_agent.services.streaming import StreamingAgent, ToolCallAccumulator

__all__ = [
    "AgentLoop",
    "AgentRuntime",
    "ConfirmationResolver",
    "StreamingAgent",
    "ToolCallAccumulator",
]
