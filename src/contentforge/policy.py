"""Loop limits and request options."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class LoopPolicy:
    max_iterations: int = 10
    max_read_only_iterations: int = 4
    max_output_tokens: int = 10000
    temperature: float = 0.7
    private: bool = True
    inject_mutation_hint: bool = True
    max_prior_message_chars: int = 24000
    max_prior_turns: int = 20
    allow_tools: list[str] | None = None

    def __post_init__(self) -> None:
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        if not 1 <= self.max_read_only_iterations <= self.max_iterations:
            raise ValueError("max_read_only_iterations must be between 1 and max_iterations")

    def is_tool_allowed(self, name: str) -> bool:
        if self.allow_tools is None:
            return True
        return name in self.allow_tools
