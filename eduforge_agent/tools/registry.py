"""
Tool Registry - Tool inventory and role-based permission filter

This module implements the tool registry for the agent engine. The registry
is the single authority consulted before any tool execution, including
executions deferred through the confirmation workflow.

Pattern: Service Registry (tool inventory keyed by name)
Pattern: Constructor injection (one instance per process, built in the
application lifespan and handed to the agent services)

Duplicate registration overwrites the previous definition and logs a warning.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator

from eduforge_agent.core.exceptions import ToolNotFoundError
from eduforge_agent.models.domain import ToolDefinition

logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    Registry for managing available tools and their permitted roles.

    Attributes:
        _tools: Dictionary mapping tool names to ToolDefinition instances.
            Dict order is registration order, which is the stable order
            used by list_for_role().

    Example:
        >>> registry = ToolRegistry()
        >>> registry.register(query_questions_tool)
        >>> registry.can_invoke("STUDENT", "query_questions")
        True
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._tools: dict[str, ToolDefinition] = {}

    def register(self, tool: ToolDefinition) -> None:
        """
        Register a tool under its name.

        If a tool with the same name exists, it is overwritten.

        Args:
            tool: The ToolDefinition to register.
        """
        if tool.name in self._tools:
            logger.warning(f"Overwriting existing tool registration: {tool.name}")
            # re-insert so the overwritten tool moves to the end
            del self._tools[tool.name]
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def unregister(self, name: str) -> None:
        """
        Remove a tool from the registry.

        Note:
            Does not raise an error if the tool doesn't exist.
        """
        self._tools.pop(name, None)
        logger.debug(f"Unregistered tool: {name}")

    def get(self, name: str) -> ToolDefinition:
        """
        Get a registered tool by name.

        Raises:
            ToolNotFoundError: If the tool is not registered.
        """
        if name not in self._tools:
            raise ToolNotFoundError(name)
        return self._tools[name]

    def has(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools

    def list(self) -> list[ToolDefinition]:
        """List all registered tool definitions in registration order."""
        return list(self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools)

    # =========================================================================
    # Permission Filter
    # =========================================================================

    def list_for_role(self, role: str) -> list[ToolDefinition]:
        """
        List the tools a role may see and invoke.

        Args:
            role: The acting role.

        Returns:
            Every tool whose role set contains role, in registration order.
        """
        return [tool for tool in self._tools.values() if role in tool.roles]

    def schemas_for_role(self, role: str) -> list[dict[str, Any]]:
        """
        Project the role's tools into the reasoning service's schema list.

        Only name, description and parameters are exposed; handlers never are.
        """
        return [tool.to_schema() for tool in self.list_for_role(role)]

    def can_invoke(self, role: str, name: str) -> bool:
        """
        Decide whether role may execute the named tool.

        Returns:
            False if the tool is unknown, otherwise whether role is in the
            tool's role set.
        """
        tool = self._tools.get(name)
        if tool is None:
            return False
        return role in tool.roles

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self._tools.values())
