from __future__ import annotations

import json
from pathlib import Path

import pytest

from contentforge.agent import AgentLoop, TerminationReason
from contentforge.failures import AgentLoopError, ClientInvalidError
from contentforge.models.base import ModelResponse, ModelSelection, ToolCall
from contentforge.models.mock import MockChatModel
from contentforge.models.resilient import FailureCounterStore, ResilientInvoker
from contentforge.policy import LoopPolicy
from contentforge.routing import Intent, RoutingPlan
from contentforge.tools.builtins.filesystem import workspace_tools
from contentforge.tools.registry import ToolRegistry
from contentforge.trace import TraceRecorder


def _call(name: str, arguments, call_id: str | None = None) -> ModelResponse:
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return ModelResponse(tool_calls=[ToolCall(id=call_id, name=name, arguments=arguments)])


def _loop(workspace: Path, scripted, policy: LoopPolicy | None = None):
    model = MockChatModel(scripted=scripted)
    registry = ToolRegistry()
    registry.register_all(workspace_tools(str(workspace)))
    invoker = ResilientInvoker(model, FailureCounterStore())
    loop = AgentLoop(invoker, registry, ModelSelection(current="test/model"), policy=policy)
    return loop, model


def _tool_messages(request) -> list[str]:
    return [message["content"] for message in request.messages if message.get("role") == "tool"]


def test_plain_answer_completes_in_one_iteration(tmp_path):
    loop, model = _loop(tmp_path, [ModelResponse(content="Hello there.")])
    result = loop.run("hi")
    assert result.text == "Hello there."
    assert result.iterations == 1
    assert result.termination_reason is TerminationReason.NATURAL_COMPLETION
    assert result.actions_used == []
    assert result.model == "test/model"
    assert len(model.requests) == 1


def test_read_only_exploration_stops_at_ceiling(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.html").write_text("<html></html>", encoding="utf-8")
    scripted = [_call("read_file", {"path": "src/a.html"}) for _ in range(10)]
    loop, model = _loop(tmp_path, scripted, LoopPolicy(max_iterations=10, max_read_only_iterations=4))
    result = loop.run("make it better")
    assert result.termination_reason is TerminationReason.READ_ONLY_CEILING
    assert result.iterations == 4
    assert len(model.requests) == 4
    assert "progress" in result.text
    assert result.actions_used == ["read_file"] * 4


def test_iteration_ceiling_summarizes_changes(tmp_path):
    scripted = [
        _call("write_file", {"path": "src/a.html", "content": "<html></html>"}),
        _call("list_files", {"path": "src"}),
        _call("list_files", {"path": "src"}),
        ModelResponse(content="never reached"),
    ]
    loop, model = _loop(tmp_path, scripted, LoopPolicy(max_iterations=3, max_read_only_iterations=2))
    result = loop.run("build and check a page")
    assert result.termination_reason is TerminationReason.ITERATION_CEILING
    assert result.iterations == 3
    assert len(model.requests) == 3
    assert "src/a.html" in result.text
    assert result.mutated_files == ["src/a.html"]


def test_malformed_arguments_are_healed(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.html").write_text("hello page", encoding="utf-8")
    scripted = [
        _call("read_file", "```json\n{path: 'src/a.html',}\n```", call_id="c1"),
        ModelResponse(content="Read it."),
    ]
    loop, model = _loop(tmp_path, scripted)
    result = loop.run("show src/a.html")
    assert result.text == "Read it."
    assert _tool_messages(model.requests[1]) == ["hello page"]


def test_unrepairable_arguments_become_error_result_and_loop_recovers(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.html").write_text("hello page", encoding="utf-8")
    scripted = [
        _call("read_file", "not json at all", call_id="c1"),
        _call("read_file", {"path": "src/a.html"}, call_id="c2"),
        ModelResponse(content="Recovered."),
    ]
    loop, model = _loop(tmp_path, scripted)
    result = loop.run("show src/a.html")
    assert result.text == "Recovered."
    assert result.iterations == 3
    first_result = _tool_messages(model.requests[1])[0]
    assert first_result.startswith("Error: invalid JSON in tool arguments for read_file")
    assert _tool_messages(model.requests[2])[-1] == "hello page"


def test_tool_results_follow_assistant_tool_call_message(tmp_path):
    scripted = [_call("list_files", {"path": "."}, call_id="abc"), ModelResponse(content="done")]
    loop, model = _loop(tmp_path, scripted)
    loop.run("list")
    messages = model.requests[1].messages
    assistant = messages[-2]
    tool = messages[-1]
    assert assistant["role"] == "assistant"
    assert assistant["tool_calls"][0]["id"] == "abc"
    assert tool == {"role": "tool", "tool_call_id": "abc", "content": tool["content"]}


def test_edit_scope_guard_blocks_second_write(tmp_path):
    (tmp_path / "src").mkdir()
    page = tmp_path / "src" / "a.html"
    page.write_text("<h1>old</h1>", encoding="utf-8")
    scripted = [
        _call("edit_file", {"path": "src/a.html", "replacements": [{"old": "old", "new": "new"}]}),
        _call("write_file", {"path": "src/a.html", "content": "clobbered"}),
        ModelResponse(content="Updated the heading."),
    ]
    plan = RoutingPlan(intent=Intent.EDIT, action_sequence=["read_file", "edit_file"])
    loop, model = _loop(tmp_path, scripted)
    result = loop.run("change the heading in src/a.html", plan=plan)
    assert result.text == "Updated the heading."
    assert page.read_text(encoding="utf-8") == "<h1>new</h1>"
    assert "already modified" in _tool_messages(model.requests[2])[-1]


def test_follow_up_requests_keep_the_requested_model_id(tmp_path):
    scripted = [
        ModelResponse(
            tool_calls=[ToolCall(name="list_files", arguments="{}")], model="vendor/model-2024-06-01"
        ),
        ModelResponse(content="Nothing there yet.", model="vendor/model-2024-06-01"),
    ]
    loop, model = _loop(tmp_path, scripted)
    result = loop.run("what files are there")
    assert [request.model for request in model.requests] == ["test/model", "test/model"]
    assert result.model == "test/model"


@pytest.mark.parametrize("alias", ["./src/a.html", "src//a.html", "src/../src/a.html"])
def test_edit_scope_guard_treats_path_spellings_as_one_file(tmp_path, alias):
    scripted = [
        _call("write_file", {"path": "src/a.html", "content": "first"}),
        _call("write_file", {"path": alias, "content": "second"}),
        ModelResponse(content="Done."),
    ]
    plan = RoutingPlan(intent=Intent.EDIT, action_sequence=["write_file"])
    loop, model = _loop(tmp_path, scripted)
    result = loop.run("rewrite src/a.html", plan=plan)
    assert (tmp_path / "src" / "a.html").read_text(encoding="utf-8") == "first"
    assert result.mutated_files == ["src/a.html"]
    assert "already modified" in _tool_messages(model.requests[2])[-1]


def test_mutation_hint_names_last_modified_file(tmp_path):
    scripted = [
        _call("write_file", {"path": "src/b.html", "content": "<p>b</p>"}),
        ModelResponse(content="Created."),
    ]
    loop, model = _loop(tmp_path, scripted)
    loop.run("create b")
    first_system = [m["content"] for m in model.requests[0].messages if m["role"] == "system"]
    assert not any("Most recently modified file" in content for content in first_system)
    hint = model.requests[1].messages[-1]
    assert hint["role"] == "system"
    assert "src/b.html" in hint["content"]


def test_routing_guidance_and_prior_messages_are_included(tmp_path):
    plan = RoutingPlan(intent=Intent.READ, action_sequence=["file_exists", "read_file"])
    prior = [
        {"role": "system", "content": "stale system prompt"},
        {"role": "user", "content": "earlier question"},
        {"role": "assistant", "content": "earlier answer"},
    ]
    loop, model = _loop(tmp_path, [ModelResponse(content="ok")])
    loop.run("read src/a.html", prior_messages=prior, plan=plan)
    messages = model.requests[0].messages
    assert "## ROUTING GUIDANCE" in messages[1]["content"]
    assert "file_exists -> read_file" in messages[1]["content"]
    contents = [message["content"] for message in messages]
    assert "stale system prompt" not in contents
    assert contents[-3:] == ["earlier question", "earlier answer", "read src/a.html"]


def test_model_errors_surface_with_iteration_count(tmp_path):
    scripted = [
        _call("list_files", {"path": "."}),
        ClientInvalidError("bad request", status_code=400),
    ]
    loop, _ = _loop(tmp_path, scripted)
    with pytest.raises(AgentLoopError) as excinfo:
        loop.run("list")
    assert excinfo.value.iterations == 1
    assert "after 1 iterations" in str(excinfo.value)


def test_trace_is_written(tmp_path):
    trace = TraceRecorder(trace_id="run-1", trace_dir=str(tmp_path / "traces"))
    scripted = [_call("list_files", {"path": "."}), ModelResponse(content="done")]
    loop, _ = _loop(tmp_path / "workspace", scripted)
    plan = RoutingPlan(intent=Intent.CHAT)
    result = loop.run("list", plan=plan, trace=trace)
    assert result.trace_path is not None
    payload = json.loads(Path(result.trace_path).read_text(encoding="utf-8"))
    event_types = [event["type"] for event in payload["events"]]
    assert event_types[0] == "routing"
    assert "tool_call" in event_types
    assert "tool_result" in event_types
    assert payload["stats"]["termination_reason"] == "natural-completion"
