"""Tool registry for dynamic tool management."""

import json
from typing import Any

from loguru import logger

from picobot.agent.tools.base import Tool, ToolOutcome
from picobot.utils.helpers import truncate


class ToolRegistry:
    """
    Registry for agent tools.

    Allows dynamic registration and execution of tools.
    """

    def __init__(self):
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """Register a tool."""
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> None:
        """Unregister a tool by name."""
        self._tools.pop(name, None)

    def get(self, name: str) -> Tool | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools

    def get_definitions(self) -> list[dict[str, Any]]:
        """Get all tool declarations for the provider request."""
        return [tool.to_schema() for tool in self._tools.values()]

    async def execute(self, name: str, params: dict[str, Any]) -> ToolOutcome:
        """
        Execute a tool by name with given parameters.

        Never raises: an unknown name, invalid parameters or an exception
        inside the tool all come back as an error outcome.
        """
        tool = self._tools.get(name)
        if not tool:
            logger.warning(f"Model requested unknown tool: {name}")
            return ToolOutcome(f"Error: tool '{name}' not found", is_error=True)

        args_str = json.dumps(params, ensure_ascii=False)
        logger.info(f"Tool call: {name}({truncate(args_str)})")
        try:
            errors = tool.validate_params(params)
            if errors:
                return ToolOutcome(
                    f"Error: Invalid parameters for tool '{name}': " + "; ".join(errors),
                    is_error=True,
                )
            result = await tool.execute(**params)
        except Exception as e:
            logger.warning(f"Tool {name} failed: {e}")
            return ToolOutcome(f"Error: {e}", is_error=True)

        logger.info(f"Tool result: {name} -> ok")
        return ToolOutcome(result)

    @property
    def tool_names(self) -> list[str]:
        """Get list of registered tool names."""
        return list(self._tools.keys())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools
