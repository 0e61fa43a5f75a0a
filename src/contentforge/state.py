"""Per-request conversation state for the agent loop."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

MAX_RECENT_FILES = 10


class ConversationState(BaseModel):
    messages: list[dict[str, Any]] = Field(default_factory=list)
    iteration_count: int = 0
    read_only_iteration_count: int = 0
    recent_files: list[str] = Field(default_factory=list)
    mutated_files: list[str] = Field(default_factory=list)
    edit_scoped: bool = False

    def append(self, message: dict[str, Any]) -> None:
        self.messages.append(message)

    def record_iteration(self, read_only: bool) -> None:
        self.iteration_count += 1
        if read_only:
            self.read_only_iteration_count += 1

    @property
    def has_mutated(self) -> bool:
        return bool(self.mutated_files)

    @property
    def last_mutated_file(self) -> str | None:
        return self.mutated_files[-1] if self.mutated_files else None

    def remember_file(self, path: str) -> None:
        if path in self.recent_files:
            self.recent_files.remove(path)
        self.recent_files.insert(0, path)
        del self.recent_files[MAX_RECENT_FILES:]

    def can_mutate(self, path: str) -> bool:
        """Edit-scoped conversations may change each file only once."""
        return not (self.edit_scoped and path in self.mutated_files)

    def mark_mutated(self, path: str) -> None:
        if path not in self.mutated_files:
            self.mutated_files.append(path)
        self.remember_file(path)
