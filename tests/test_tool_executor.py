from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from contentforge.failures import FailureTag
from contentforge.models.base import ToolCall
from contentforge.state import ConversationState
from contentforge.tools.base import SideEffect, Tool, ToolResult
from contentforge.tools.executor import ToolExecutor, schema_example
from contentforge.tools.registry import ToolRegistry


class EchoInput(BaseModel):
    text: str
    times: int = 1


class EchoTool(Tool):
    name = "echo"
    description = "Echo text."
    input_schema = EchoInput

    def run(self, data: BaseModel | dict[str, Any]) -> ToolResult:
        input_data = EchoInput.model_validate(data)
        return ToolResult(output=input_data.text * input_data.times)


class StampInput(BaseModel):
    path: str


class StampTool(Tool):
    name = "stamp"
    description = "Pretend to change a file."
    input_schema = StampInput
    side_effect = SideEffect.MUTATING

    def __init__(self) -> None:
        self.calls = 0

    def run(self, data: BaseModel | dict[str, Any]) -> ToolResult:
        StampInput.model_validate(data)
        self.calls += 1
        return ToolResult(output="stamped")


class CrashTool(Tool):
    name = "crash"
    description = "Always crashes."
    input_schema = EchoInput

    def run(self, data: BaseModel | dict[str, Any]) -> ToolResult:
        raise RuntimeError("kaboom")


class SoftErrorTool(Tool):
    name = "soft_error"
    description = "Reports an error result."
    input_schema = EchoInput

    def run(self, data: BaseModel | dict[str, Any]) -> ToolResult:
        return ToolResult(output="Error: nothing to do", is_error=True)


def _executor(max_output_chars: int = 12000) -> tuple[ToolExecutor, StampTool]:
    registry = ToolRegistry()
    stamp = StampTool()
    registry.register_all([EchoTool(), stamp, CrashTool(), SoftErrorTool()])
    return ToolExecutor(registry, max_output_chars=max_output_chars), stamp


def test_executes_valid_call():
    executor, _ = _executor()
    execution = executor.execute(ToolCall(name="echo", arguments='{"text": "hi", "times": 2}'), "c1", ConversationState())
    assert execution.ok
    assert execution.content == "hihi"
    assert execution.repairs == []
    assert execution.message() == {"role": "tool", "tool_call_id": "c1", "content": "hihi"}


def test_heals_malformed_arguments():
    executor, _ = _executor()
    execution = executor.execute(ToolCall(name="echo", arguments="{text: 'hi'"), "c1", ConversationState())
    assert execution.ok
    assert execution.content == "hi"
    assert "closed_braces" in execution.repairs
    assert "quoted_unquoted_keys" in execution.repairs


def test_unparseable_arguments_report_parse_error():
    executor, _ = _executor()
    execution = executor.execute(ToolCall(name="echo", arguments="gibberish"), "c1", ConversationState())
    assert not execution.ok
    assert execution.failure.tag is FailureTag.PARSE_ERROR
    assert "Call echo again" in execution.content


def test_non_object_arguments_report_parse_error():
    executor, _ = _executor()
    execution = executor.execute(ToolCall(name="echo", arguments="[1, 2]"), "c1", ConversationState())
    assert not execution.ok
    assert "expected a JSON object, got list" in execution.content


def test_unknown_tool_lists_available_tools():
    executor, _ = _executor()
    execution = executor.execute(ToolCall(name="nope", arguments="{}"), "c1", ConversationState())
    assert not execution.ok
    assert execution.failure.tag is FailureTag.UNKNOWN_TOOL
    assert "echo" in execution.content


def test_validation_error_includes_expected_shape():
    executor, _ = _executor()
    execution = executor.execute(ToolCall(name="echo", arguments='{"times": 3}'), "c1", ConversationState())
    assert not execution.ok
    assert execution.content.startswith("Error: invalid arguments for echo")
    assert 'Expected shape: {"text": "value"}' in execution.content
    assert execution.failure.tag is FailureTag.TOOL_ERROR


def test_crash_and_soft_error_do_not_raise():
    executor, _ = _executor()
    crashed = executor.execute(ToolCall(name="crash", arguments='{"text": "x"}'), "c1", ConversationState())
    assert not crashed.ok
    assert "RuntimeError: kaboom" in crashed.content
    soft = executor.execute(ToolCall(name="soft_error", arguments='{"text": "x"}'), "c2", ConversationState())
    assert not soft.ok
    assert soft.content == "Error: nothing to do"


def test_scope_guard_blocks_second_mutation_in_edit_scope():
    executor, stamp = _executor()
    state = ConversationState(edit_scoped=True)
    first = executor.execute(ToolCall(name="stamp", arguments={"path": "src/a.html"}), "c1", state)
    second = executor.execute(ToolCall(name="stamp", arguments={"path": "src/a.html"}), "c2", state)
    other = executor.execute(ToolCall(name="stamp", arguments={"path": "src/b.html"}), "c3", state)
    assert first.ok and other.ok
    assert not second.ok
    assert second.failure.tag is FailureTag.SCOPE_VIOLATION
    assert stamp.calls == 2
    assert state.mutated_files == ["src/a.html", "src/b.html"]


def test_repeat_mutation_allowed_outside_edit_scope():
    executor, stamp = _executor()
    state = ConversationState()
    executor.execute(ToolCall(name="stamp", arguments={"path": "src/a.html"}), "c1", state)
    again = executor.execute(ToolCall(name="stamp", arguments={"path": "src/a.html"}), "c2", state)
    assert again.ok
    assert stamp.calls == 2


def test_output_is_clipped():
    executor, _ = _executor(max_output_chars=10)
    execution = executor.execute(ToolCall(name="echo", arguments={"text": "x", "times": 25}), "c1", ConversationState())
    assert execution.content.startswith("x" * 10)
    assert "[truncated 15 characters]" in execution.content


def test_schema_example_uses_required_fields():
    assert schema_example(EchoTool()) == {"text": "value"}
