"""Base model interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field


class ToolCall(BaseModel):
    id: str | None = None
    name: str
    arguments: str | dict[str, Any] = "{}"


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ModelRequest(BaseModel):
    model: str
    messages: list[dict[str, Any]]
    tools: list[dict[str, Any]] | None = None
    max_tokens: int = 10000
    temperature: float = 0.7
    private: bool = True


class ModelResponse(BaseModel):
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    finish_reason: str | None = None
    usage: Usage | None = None
    model: str | None = None
    # Model id the request was sent with; providers may echo a different one in ``model``.
    requested_model: str | None = None


class BaseChatModel(ABC):
    """Abstract chat model interface."""

    @abstractmethod
    def chat(self, request: ModelRequest) -> ModelResponse:
        """Send chat request and return model response."""
        raise NotImplementedError


@dataclass
class ModelSelection:
    """The model new conversations start with; switchable at runtime."""

    current: str
    presets: dict[str, str] = field(default_factory=dict)

    def switch(self, name: str) -> str:
        key = name.strip().lower()
        if key in self.presets:
            self.current = self.presets[key]
        elif "/" in name or name in self.presets.values():
            self.current = name.strip()
        else:
            available = ", ".join(sorted(self.presets)) or "none"
            raise ValueError(f"Unknown model {name!r}. Available presets: {available}")
        return self.current
