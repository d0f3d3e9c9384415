"""
Tool Executor - Runs a resolved tool definition

The executor validates arguments against the tool's JSON Schema, runs the
handler with a ToolContext and enforces a timeout. It never looks up tools
and never checks permissions: callers resolve the tool through the
ToolRegistry (the single permission authority) first.

Pattern: Command Executor (executes tool calls as commands)
Pattern: Async-first with sync handler support
Pattern: Fail-fast validation with graceful error wrapping
"""

import asyncio
import functools
import inspect
import logging
from typing import Any, Callable

from eduforge_agent.core.exceptions import ArgumentParseError, ToolExecutionError
from eduforge_agent.models.domain import ToolContext, ToolDefinition

logger = logging.getLogger(__name__)

# Default execution timeout in seconds
DEFAULT_TIMEOUT = 60.0


class ToolExecutor:
    """
    Executor for running registered tools.

    Attributes:
        timeout: Maximum execution time in seconds.

    Example:
        >>> executor = ToolExecutor(timeout=30)
        >>> result = await executor.execute(tool, {"topic": "函数"}, context)
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout

    async def execute(
        self,
        tool: ToolDefinition,
        params: dict[str, Any],
        context: ToolContext,
    ) -> Any:
        """
        Execute a tool and return the handler's raw result.

        Args:
            tool: The resolved ToolDefinition.
            params: Parsed arguments.
            context: Fresh per-invocation context.

        Returns:
            Whatever the handler returns.

        Raises:
            ArgumentParseError: If arguments fail schema validation.
            ToolExecutionError: If the handler raises or times out.
        """
        self._validate_arguments(tool.name, tool.parameters, params)

        try:
            return await self._execute_with_timeout(tool.handler, params, context)
        except asyncio.TimeoutError as e:
            logger.warning(f"Tool {tool.name} timed out after {self.timeout}s")
            raise ToolExecutionError(
                f"Tool execution timeout after {self.timeout}s", tool_name=tool.name
            ) from e
        except ToolExecutionError:
            raise
        except Exception as e:
            logger.error(f"Tool {tool.name} execution failed: {e}")
            raise ToolExecutionError(str(e) or type(e).__name__, tool_name=tool.name) from e

    # =========================================================================
    # Argument Validation
    # =========================================================================

    def _validate_arguments(
        self, tool_name: str, schema: dict[str, Any], arguments: dict[str, Any]
    ) -> None:
        """
        Validate arguments against tool's JSON Schema.

        Performs basic validation:
        - Required properties are present
        - Type checking for known types

        Raises:
            ArgumentParseError: If validation fails.
        """
        required = schema.get("required", [])
        for prop in required:
            if prop not in arguments:
                raise ArgumentParseError(
                    f"Missing required argument: {prop}",
                    tool_name=tool_name,
                    field=prop,
                )

        properties = schema.get("properties", {})
        for prop_name, value in arguments.items():
            if prop_name not in properties:
                continue  # extra properties are allowed

            expected_type = properties[prop_name].get("type")
            if expected_type and not self._check_type(value, expected_type):
                raise ArgumentParseError(
                    f"Invalid type for '{prop_name}': expected {expected_type}, "
                    f"got {type(value).__name__}",
                    tool_name=tool_name,
                    field=prop_name,
                )

            allowed = properties[prop_name].get("enum")
            if allowed is not None and value not in allowed:
                raise ArgumentParseError(
                    f"Invalid value for '{prop_name}': {value!r} not in {allowed}",
                    tool_name=tool_name,
                    field=prop_name,
                )

    def _check_type(self, value: Any, expected_type: str) -> bool:
        """Check if a value matches the expected JSON Schema type."""
        type_map = {
            "string": str,
            "integer": int,
            "number": (int, float),
            "boolean": bool,
            "array": list,
            "object": dict,
        }

        python_type = type_map.get(expected_type)
        if python_type is None:
            return True  # Unknown type, allow

        # bool is a subclass of int but not a JSON number
        if expected_type in ("integer", "number") and isinstance(value, bool):
            return False

        return isinstance(value, python_type)

    # =========================================================================
    # Timeout Handling
    # =========================================================================

    async def _execute_with_timeout(
        self, handler: Callable[..., Any], params: dict[str, Any], context: ToolContext
    ) -> Any:
        """
        Execute a handler with timeout protection.

        Sync handlers are run in the default executor to avoid blocking.

        Raises:
            asyncio.TimeoutError: If execution exceeds timeout.
        """
        if inspect.iscoroutinefunction(handler):
            return await asyncio.wait_for(handler(params, context), timeout=self.timeout)

        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, functools.partial(handler, params, context))
        return await asyncio.wait_for(future, timeout=self.timeout)
