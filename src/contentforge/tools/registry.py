"""Tool registry."""

from __future__ import annotations

from typing import Iterable

from contentforge.tools.base import SideEffect, Tool


class ToolRegistry:
    """Registry of tools available to the agent."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def register_all(self, tools: Iterable[Tool]) -> None:
        for tool in tools:
            self.register(tool)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def list(self) -> list[Tool]:
        return list(self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools)

    def side_effect(self, name: str) -> SideEffect | None:
        tool = self._tools.get(name)
        return tool.side_effect if tool else None

    def is_read_only(self, name: str) -> bool:
        """Unknown names count as read-only."""
        return self.side_effect(name) is not SideEffect.MUTATING

    def openai_schemas(self) -> list[dict]:
        return [tool.openai_schema() for tool in self._tools.values()]
