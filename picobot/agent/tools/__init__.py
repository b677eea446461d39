"""Agent tools module."""

from picobot.agent.tools.base import Tool, ToolOutcome
from picobot.agent.tools.registry import ToolRegistry

__all__ = ["Tool", "ToolOutcome", "ToolRegistry"]
