"""Base tool definitions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from pydantic import BaseModel


class SideEffect(str, Enum):
    READ_ONLY = "read-only"
    MUTATING = "mutating"


class ToolResult(BaseModel):
    output: str
    is_error: bool = False


class Tool(ABC):
    """Abstract tool."""

    name: str
    description: str
    input_schema: type[BaseModel]
    side_effect: SideEffect = SideEffect.READ_ONLY

    @abstractmethod
    def run(self, data: BaseModel | dict[str, Any]) -> ToolResult:
        """Execute the tool."""
        raise NotImplementedError

    @property
    def mutating(self) -> bool:
        return self.side_effect is SideEffect.MUTATING

    def target(self, arguments: dict[str, Any]) -> str | None:
        """Return the file a call would touch, if any."""
        path = arguments.get("path")
        return str(path) if path else None

    def openai_schema(self) -> dict[str, Any]:
        """Return OpenAI-compatible tool schema."""
        schema = self.input_schema.model_json_schema()
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": schema,
            },
        }
