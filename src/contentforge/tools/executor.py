"""Resolve and run requested tool calls."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from contentforge.failures import FailureEvent, FailureTag
from contentforge.models.base import ToolCall
from contentforge.state import ConversationState
from contentforge.tools.base import SideEffect, Tool
from contentforge.tools.registry import ToolRegistry
from contentforge.util.json_repair import HealResult, heal
from contentforge.util.logging import clip, get_logger, redact

logger = get_logger(__name__)


@dataclass(frozen=True)
class ToolExecution:
    call_id: str
    name: str
    content: str
    ok: bool
    side_effect: SideEffect | None
    arguments: dict[str, Any] | None = None
    repairs: list[str] = field(default_factory=list)
    failure: FailureEvent | None = None

    def message(self) -> dict[str, Any]:
        return {"role": "tool", "tool_call_id": self.call_id, "content": self.content}


def _example_value(schema: dict[str, Any]) -> Any:
    if "default" in schema:
        return schema["default"]
    schema_type = schema.get("type")
    if isinstance(schema_type, list):
        schema_type = schema_type[0]
    return {
        "string": "value",
        "integer": 0,
        "number": 0,
        "boolean": False,
        "array": [],
        "object": {},
    }.get(schema_type)


def schema_example(tool: Tool) -> dict[str, Any]:
    schema = tool.input_schema.model_json_schema()
    properties = schema.get("properties", {})
    return {name: _example_value(properties.get(name, {})) for name in schema.get("required", [])}


class ToolExecutor:
    """Heals arguments, enforces the scope guard and runs registered tools.

    Failures never raise; they come back as ``Error: ...`` tool-result text the
    model can act on.
    """

    def __init__(self, registry: ToolRegistry, max_output_chars: int = 12000) -> None:
        self.registry = registry
        self.max_output_chars = max_output_chars

    def execute(self, call: ToolCall, call_id: str, state: ConversationState) -> ToolExecution:
        healed = heal(call.arguments)
        if healed.repairs:
            logger.info("Healed arguments for %s: %s", call.name, ", ".join(healed.repairs))
        if not isinstance(healed.parsed, dict):
            return self._failure(
                call,
                call_id,
                self._heal_failure_text(call.name, healed),
                FailureTag.PARSE_ERROR,
                repairs=healed.repairs,
            )
        arguments = healed.parsed
        logger.info(
            "Tool call requested: %s args=%s", call.name, clip(redact(json.dumps(arguments, default=str)))
        )
        tool = self.registry.get(call.name)
        if tool is None:
            available = ", ".join(self.registry.names())
            return self._failure(
                call,
                call_id,
                f"Error: unknown tool {call.name!r}. Available tools: {available}",
                FailureTag.UNKNOWN_TOOL,
                arguments=arguments,
                repairs=healed.repairs,
            )
        target = tool.target(arguments)
        if tool.mutating and target and not state.can_mutate(target):
            return self._failure(
                call,
                call_id,
                f"Error: {target} was already modified in this conversation. "
                "Each file may be changed once per edit request; summarize what was done instead.",
                FailureTag.SCOPE_VIOLATION,
                arguments=arguments,
                repairs=healed.repairs,
                side_effect=tool.side_effect,
            )
        try:
            result = tool.run(arguments)
        except ValidationError as exc:
            example = json.dumps(schema_example(tool))
            summary = self._validation_summary(exc)
            text = f"Error: invalid arguments for {tool.name}: {summary}. Expected shape: {example}"
            return self._failure(
                call, call_id, text, FailureTag.TOOL_ERROR, arguments, healed.repairs, tool.side_effect
            )
        except (ValueError, TypeError, KeyError, OSError) as exc:
            text = f"Error: {exc}"
            return self._failure(
                call, call_id, text, FailureTag.TOOL_ERROR, arguments, healed.repairs, tool.side_effect
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("Tool %s crashed", tool.name)
            text = f"Error: {exc.__class__.__name__}: {exc}"
            return self._failure(
                call, call_id, text, FailureTag.TOOL_ERROR, arguments, healed.repairs, tool.side_effect
            )
        if result.is_error:
            text = self._clip(result.output)
            return self._failure(
                call, call_id, text, FailureTag.TOOL_ERROR, arguments, healed.repairs, tool.side_effect
            )
        if tool.mutating and target:
            state.mark_mutated(target)
        return ToolExecution(
            call_id=call_id,
            name=call.name,
            content=self._clip(result.output),
            ok=True,
            side_effect=tool.side_effect,
            arguments=arguments,
            repairs=healed.repairs,
        )

    def _failure(
        self,
        call: ToolCall,
        call_id: str,
        text: str,
        tag: FailureTag,
        arguments: dict[str, Any] | None = None,
        repairs: list[str] | None = None,
        side_effect: SideEffect | None = None,
    ) -> ToolExecution:
        logger.warning("Tool %s failed: %s", call.name, clip(text))
        if not text.startswith("Error"):
            text = f"Error: {text}"
        return ToolExecution(
            call_id=call_id,
            name=call.name,
            content=text,
            ok=False,
            side_effect=side_effect if side_effect is not None else self.registry.side_effect(call.name),
            arguments=arguments,
            repairs=list(repairs or []),
            failure=FailureEvent(tag=tag, reason=clip(text), details={"tool": call.name}),
        )

    def _heal_failure_text(self, name: str, healed: HealResult) -> str:
        if healed.parsed is None:
            problem = healed.error or "unparseable"
        else:
            problem = f"expected a JSON object, got {type(healed.parsed).__name__}"
        attempted = ", ".join(healed.repairs) or "none"
        return (
            f"Error: invalid JSON in tool arguments for {name} ({problem}). "
            f"Repairs attempted: {attempted}. Call {name} again with a single valid JSON object."
        )

    def _validation_summary(self, exc: ValidationError) -> str:
        parts = []
        for error in exc.errors():
            location = ".".join(str(item) for item in error.get("loc", ())) or "arguments"
            parts.append(f"{location}: {error.get('msg')}")
        return "; ".join(parts)

    def _clip(self, text: str) -> str:
        if len(text) <= self.max_output_chars:
            return text
        omitted = len(text) - self.max_output_chars
        return f"{text[: self.max_output_chars]}\n[truncated {omitted} characters]"
