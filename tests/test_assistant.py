from __future__ import annotations

import json

from contentforge.agent import AgentLoop
from contentforge.engine import Assistant, ReplyPath
from contentforge.failures import ClientInvalidError
from contentforge.models.base import ModelResponse, ModelSelection, ToolCall
from contentforge.models.mock import MockChatModel
from contentforge.models.resilient import FailureCounterStore, ResilientInvoker
from contentforge.pipeline.builder import ModelBuilder
from contentforge.pipeline.log_store import InMemoryBuildLogStore
from contentforge.pipeline.planner import ModelPlanner
from contentforge.pipeline.runner import BuildPipeline
from contentforge.pipeline.scribe import ModelScribe
from contentforge.pipeline.tester import QualityTester
from contentforge.routing import Intent, IntentRouter
from contentforge.tools.builtins.filesystem import workspace_tools
from contentforge.tools.registry import ToolRegistry

GAME_PAGE = """<!DOCTYPE html>
<html>
<head>
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<link rel="stylesheet" href="../page-theme.css">
<style>body { touch-action: none; } @media (max-width: 500px) { main { margin: 0; } }</style>
</head>
<body>
<a href="../index.html">HOME</a>
<div class="mobile-controls"></div>
<script>window.addEventListener("touchstart", () => {});</script>
</body>
</html>"""


def _assistant(tmp_path, scripted, with_pipeline=True):
    model = MockChatModel(scripted=scripted)
    invoker = ResilientInvoker(model, FailureCounterStore())
    registry = ToolRegistry()
    registry.register_all(workspace_tools(str(tmp_path)))
    agent = AgentLoop(invoker, registry, ModelSelection(current="test/model"))
    pipeline = None
    if with_pipeline:
        pipeline = BuildPipeline(
            planner=ModelPlanner(invoker, "test/model"),
            builder=ModelBuilder(invoker, "test/model", workspace_dir=str(tmp_path)),
            tester=QualityTester(),
            scribe=ModelScribe(invoker, "test/model", workspace_dir=str(tmp_path)),
            log_store=InMemoryBuildLogStore(),
        )
    return Assistant(IntentRouter(), agent, pipeline, trace_dir=str(tmp_path / "traces")), model


def test_vague_create_asks_a_question_without_calling_the_model(tmp_path):
    assistant, model = _assistant(tmp_path, [])
    reply = assistant.handle("make a game")
    assert reply.path is ReplyPath.CLARIFY
    assert reply.plan.clarify_first
    assert reply.text == reply.plan.clarify_question
    assert model.requests == []


def test_short_chat_takes_the_fast_path(tmp_path):
    assistant, model = _assistant(tmp_path, [ModelResponse(content=" Not much! ")])
    prior = [
        {"role": "user", "content": "hello"},
        {"role": "assistant", "content": None, "tool_calls": [{"id": "x"}]},
        {"role": "tool", "tool_call_id": "x", "content": "listing"},
    ]
    reply = assistant.handle("hey what's up", prior_messages=prior)
    assert reply.path is ReplyPath.FAST
    assert reply.text == "Not much!"
    request = model.requests[0]
    assert request.tools is None
    assert [message["role"] for message in request.messages] == ["system", "user", "user"]


def test_long_chat_goes_through_the_agent_loop(tmp_path):
    assistant, model = _assistant(tmp_path, [ModelResponse(content="Here is a thoughtful answer.")])
    message = "can you tell me a little about how the pages on your site are usually organized for visitors"
    reply = assistant.handle(message)
    assert reply.path is ReplyPath.AGENT
    assert reply.plan.intent is Intent.CHAT
    assert reply.iterations == 1
    assert model.requests[0].tools


def test_edit_request_runs_agent_with_routing_guidance(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "game.html").write_text("<style>body{color:red}</style>", encoding="utf-8")
    scripted = [
        ModelResponse(tool_calls=[ToolCall(id="c1", name="read_file", arguments='{"path": "src/game.html"}')]),
        ModelResponse(
            tool_calls=[
                ToolCall(
                    id="c2",
                    name="edit_file",
                    arguments=json.dumps(
                        {"path": "src/game.html", "replacements": [{"old": "red", "new": "green"}]}
                    ),
                )
            ]
        ),
        ModelResponse(content="Changed the text color to green."),
    ]
    assistant, model = _assistant(tmp_path, scripted)
    reply = assistant.handle("fix the CSS on src/game.html")
    assert reply.path is ReplyPath.AGENT
    assert reply.plan.intent is Intent.EDIT
    assert reply.actions_used == ["read_file", "edit_file"]
    assert reply.mutated_files == ["src/game.html"]
    assert reply.termination_reason == "natural-completion"
    assert reply.trace_path is not None
    assert "## ROUTING GUIDANCE" in model.requests[0].messages[1]["content"]
    assert "green" in (tmp_path / "src" / "game.html").read_text(encoding="utf-8")


def test_model_failure_reply_carries_iteration_count(tmp_path):
    assistant, _ = _assistant(tmp_path, [ClientInvalidError("bad request", status_code=400)])
    reply = assistant.handle("fix the CSS on src/game.html")
    assert reply.path is ReplyPath.AGENT
    assert reply.iterations == 0
    assert "after 0 steps" in reply.text
    assert "client-invalid" in reply.text


def test_create_request_runs_the_build_pipeline(tmp_path):
    plan = {
        "slug": "retro-snake",
        "title": "Retro Snake",
        "content_type": "arcade-game",
        "files": ["src/retro-snake.html"],
        "features": ["wrap walls"],
        "interaction_pattern": "directional-movement",
        "collection": "arcade-games",
    }
    docs = {"metadata": {"description": "Eat the dots."}, "release_notes": "Snake is back."}
    scripted = [
        ModelResponse(content=json.dumps(plan)),
        ModelResponse(content=f"```html\n{GAME_PAGE}\n```"),
        ModelResponse(content=json.dumps(docs)),
    ]
    assistant, model = _assistant(tmp_path, scripted)
    reply = assistant.handle("build a snake game called retro-snake")
    assert reply.path is ReplyPath.BUILD
    assert reply.build_id
    assert reply.termination_reason == "success"
    assert reply.iterations == 1
    assert reply.text.startswith("Built Retro Snake (src/retro-snake.html, projectmetadata.json). Snake is back.")
    assert reply.build_id in reply.text
    assert (tmp_path / "src" / "retro-snake.html").exists()
    assert len(model.requests) == 3


def test_failed_build_reply_names_build_id(tmp_path):
    assistant, _ = _assistant(tmp_path, [ModelResponse(content="I would rather chat")])
    reply = assistant.handle("build a snake game called retro-snake")
    assert reply.path is ReplyPath.BUILD
    assert reply.termination_reason == "failed"
    assert reply.build_id in reply.text


def test_create_without_pipeline_falls_back_to_agent_loop(tmp_path):
    assistant, _ = _assistant(tmp_path, [ModelResponse(content="Done.")], with_pipeline=False)
    reply = assistant.handle("build a snake game called retro-snake")
    assert reply.path is ReplyPath.AGENT
    assert reply.text == "Done."
