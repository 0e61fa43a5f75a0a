"""Runtime model switching."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from contentforge.models.base import ModelSelection
from contentforge.tools.base import SideEffect, Tool, ToolResult


class SetModelInput(BaseModel):
    model: str = Field(description="Preset alias (e.g. kimi, qwen) or a full provider model id")


class SetModelTool(Tool):
    name = "set_model"
    description = "Switch the model used for future requests."
    input_schema = SetModelInput
    side_effect = SideEffect.MUTATING

    def __init__(self, selection: ModelSelection) -> None:
        self.selection = selection

    def target(self, arguments: dict[str, Any]) -> str | None:
        return None

    def run(self, data: BaseModel | dict[str, Any]) -> ToolResult:
        input_data = SetModelInput.model_validate(data)
        previous = self.selection.current
        current = self.selection.switch(input_data.model)
        return ToolResult(output=f"Model switched from {previous} to {current}")
