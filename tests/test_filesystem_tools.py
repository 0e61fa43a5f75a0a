from __future__ import annotations

import pytest

from contentforge.tools.builtins.filesystem import (
    EditFileTool,
    FileExistsTool,
    ListFilesTool,
    ReadFileTool,
    SearchFilesTool,
    WriteFileTool,
)


@pytest.fixture()
def workspace(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    (src / "game.html").write_text("<html>\n<canvas id='board'></canvas>\n</html>\n", encoding="utf-8")
    (src / "notes.md").write_text("# Notes\nplay the game\n", encoding="utf-8")
    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "HEAD").write_text("ref: main", encoding="utf-8")
    return tmp_path


def test_file_exists_reports_size_and_missing(workspace):
    tool = FileExistsTool(str(workspace))
    assert tool.run({"path": "src/game.html"}).output.startswith("exists: src/game.html (")
    assert tool.run({"path": "src"}).output == "exists: src (directory)"
    assert tool.run({"path": "src/missing.html"}).output == "not found: src/missing.html"


def test_list_files_filters_and_skips_git(workspace):
    tool = ListFilesTool(str(workspace))
    assert tool.run({"path": "src", "pattern": "*.html"}).output == "src/game.html"
    recursive = tool.run({"path": ".", "recursive": True}).output.splitlines()
    assert recursive == ["src/game.html", "src/notes.md"]


def test_read_file_single_and_multiple(workspace):
    tool = ReadFileTool(str(workspace))
    assert "<canvas" in tool.run({"path": "src/game.html"}).output
    combined = tool.run({"paths": ["src/game.html", "src/notes.md"]}).output
    assert "=== src/game.html ===" in combined
    assert "=== src/notes.md ===" in combined
    assert tool.target({"paths": ["src/notes.md"]}) == "src/notes.md"


def test_target_is_workspace_relative(workspace):
    tool = WriteFileTool(str(workspace))
    assert tool.target({"path": "./src//game.html"}) == "src/game.html"
    assert tool.target({"path": str(workspace / "src" / "game.html")}) == "src/game.html"
    assert tool.target({"path": "../outside.html"}) == "../outside.html"
    assert tool.target({}) is None


def test_read_file_missing_raises(workspace):
    with pytest.raises(FileNotFoundError):
        ReadFileTool(str(workspace)).run({"path": "src/none.html"})


def test_path_traversal_is_rejected(workspace):
    with pytest.raises(ValueError, match="Path traversal"):
        ReadFileTool(str(workspace)).run({"path": "../outside.txt"})
    with pytest.raises(ValueError, match="Path traversal"):
        WriteFileTool(str(workspace)).run({"path": "../../etc/evil", "content": "x"})


def test_search_files_reports_line_numbers(workspace):
    tool = SearchFilesTool(str(workspace))
    assert tool.run({"pattern": "canvas"}).output == "src/game.html:2: <canvas id='board'></canvas>"
    assert tool.run({"pattern": "GAME", "case_insensitive": True}).output == "src/notes.md:2: play the game"
    assert tool.run({"pattern": "("}).output == "No matches for '('"


def test_write_file_creates_parents(workspace):
    tool = WriteFileTool(str(workspace))
    result = tool.run({"path": "src/new/page.html", "content": "<p>hi</p>"})
    assert result.output == "Wrote 9 characters to src/new/page.html"
    assert (workspace / "src" / "new" / "page.html").read_text(encoding="utf-8") == "<p>hi</p>"
    assert tool.mutating


def test_edit_file_applies_replacements(workspace):
    tool = EditFileTool(str(workspace))
    result = tool.run(
        {"path": "src/game.html", "replacements": [{"old": "board", "new": "grid"}]}
    )
    assert result.output == "Applied 1 replacement(s) to src/game.html"
    assert "id='grid'" in (workspace / "src" / "game.html").read_text(encoding="utf-8")


def test_edit_file_rejects_missing_or_ambiguous_text(workspace):
    tool = EditFileTool(str(workspace))
    with pytest.raises(ValueError, match="not found"):
        tool.run({"path": "src/game.html", "replacements": [{"old": "absent", "new": "x"}]})
    with pytest.raises(ValueError, match="matches 2 times"):
        tool.run({"path": "src/game.html", "replacements": [{"old": "html>", "new": "x"}]})
    tool.run({"path": "src/game.html", "replacements": [{"old": "html>", "new": "body>", "replace_all": True}]})
    assert (workspace / "src" / "game.html").read_text(encoding="utf-8").count("body>") == 2
