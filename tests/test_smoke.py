from pathlib import Path

import pytest

from contentforge.cli import apply_overrides, main, parse_args
from contentforge.config import Settings
from contentforge.engine import ReplyPath
from contentforge.factory import (
    build_assistant,
    build_model,
    build_pipeline,
    build_registry,
    build_selection,
    build_invoker,
)
from contentforge.models.mock import MockChatModel
from contentforge.models.openai_compat import OpenAICompatChatModel
from contentforge.tools.base import SideEffect


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("CONTENTFORGE_MAX_ITERATIONS", "7")
    monkeypatch.setenv("CONTENTFORGE_FALLBACK_MODELS", '["a/one", "b/two"]')
    monkeypatch.setenv("CONTENTFORGE_ROUTER_CONFIDENCE", '{"default": 0.6}')
    settings = Settings()
    assert settings.max_iterations == 7
    assert settings.fallback_models == ["a/one", "b/two"]
    assert settings.router_confidence == {"default": 0.6}
    assert settings.resolve_model("Qwen") == "qwen/qwen3-coder:exacto"
    assert settings.resolve_model("vendor/custom") == "vendor/custom"


def test_cli_overrides_apply_on_top_of_settings(tmp_path: Path):
    args = parse_args(
        ["hello", "--workspace", str(tmp_path), "--max-iterations", "5", "--public", "--model", "kimi"]
    )
    settings = apply_overrides(Settings(), args)
    assert settings.workspace_dir == str(tmp_path)
    assert settings.max_iterations == 5
    assert settings.private_mode is False
    assert build_selection(settings).current == "moonshotai/kimi-k2-0905:exacto"


def test_build_model_prefers_mock_without_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    assert isinstance(build_model(Settings()), MockChatModel)
    keyed = Settings(openai_api_key="sk-test", openai_extra_headers='{"X-Title": "contentforge"}')
    model = build_model(keyed)
    assert isinstance(model, OpenAICompatChatModel)
    assert model.extra_headers == {"X-Title": "contentforge"}


def test_registry_contains_workspace_tools_and_model_switch(tmp_path: Path):
    settings = Settings(workspace_dir=str(tmp_path))
    selection = build_selection(settings)
    registry = build_registry(settings, selection)
    assert registry.names() == [
        "file_exists",
        "list_files",
        "read_file",
        "search_files",
        "write_file",
        "edit_file",
        "set_model",
    ]
    assert registry.side_effect("set_model") is SideEffect.MUTATING
    registry.get("set_model").run({"model": "qwen"})
    assert selection.current == "qwen/qwen3-coder:exacto"


def test_pipeline_uses_configured_attempts(tmp_path: Path):
    settings = Settings(workspace_dir=str(tmp_path), build_max_attempts=2, build_log_dir=str(tmp_path / "logs"))
    selection = build_selection(settings)
    pipeline = build_pipeline(settings, build_invoker(settings, MockChatModel()), selection)
    assert pipeline.max_attempts == 2
    run = pipeline.run("build a snake game called retro-snake")
    assert run.error
    assert (tmp_path / "logs" / f"{run.build_id}.jsonl").exists()


def test_assistant_smoke(tmp_path: Path):
    settings = Settings(workspace_dir=str(tmp_path))
    assistant = build_assistant(settings, model=MockChatModel())
    reply = assistant.handle("hello")
    assert reply.path is ReplyPath.FAST
    assert "Mock response" in reply.text


@pytest.mark.parametrize("request_text", ["hello", "make a game"])
def test_cli_main_runs_offline(tmp_path: Path, capsys, request_text):
    main([request_text, "--mock", "--workspace", str(tmp_path)])
    output = capsys.readouterr().out
    assert "Route:" in output
    assert "Reply:" in output
