"""
Built-in Tools Package

Tools registered at startup. All of them proxy to the question-bank and
homework plugins through the PluginBackendClient carried by ToolContext.
"""

from eduforge_agent.models.domain import ToolDefinition
from eduforge_agent.tools.builtin.homework import (
    CREATE_ASSIGNMENT,
    QUERY_ANALYTICS,
    QUERY_ASSIGNMENTS,
    QUERY_SUBMISSIONS,
)
from eduforge_agent.tools.builtin.question_bank import (
    GENERATE_QUESTIONS,
    QUERY_QUESTIONS,
)
from eduforge_agent.tools.registry import ToolRegistry

BUILTIN_TOOLS: tuple[ToolDefinition, ...] = (
    QUERY_QUESTIONS,
    QUERY_ASSIGNMENTS,
    QUERY_SUBMISSIONS,
    QUERY_ANALYTICS,
    GENERATE_QUESTIONS,
    CREATE_ASSIGNMENT,
)


def register_builtin_tools(registry: ToolRegistry) -> None:
    """
    Register all built-in tools with the given registry.

    Args:
        registry: The ToolRegistry to register tools with.
    """
    for tool in BUILTIN_TOOLS:
        registry.register(tool)


__all__ = [
    "BUILTIN_TOOLS",
    "CREATE_ASSIGNMENT",
    "GENERATE_QUESTIONS",
    "QUERY_ANALYTICS",
    "QUERY_ASSIGNMENTS",
    "QUERY_QUESTIONS",
    "QUERY_SUBMISSIONS",
    "register_builtin_tools",
]
