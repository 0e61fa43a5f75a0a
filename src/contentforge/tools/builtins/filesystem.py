"""Workspace file tools."""

from __future__ import annotations

import fnmatch
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, model_validator

from contentforge.tools.base import SideEffect, Tool, ToolResult

_SKIP_DIRS = {".git", "node_modules", "__pycache__", ".venv"}


class PathInput(BaseModel):
    path: str = Field(description="File path relative to the workspace, e.g. src/game.html")


class ListFilesInput(BaseModel):
    path: str = Field(default=".", description="Directory relative to the workspace")
    pattern: str = Field(default="*", description="Glob applied to file names")
    recursive: bool = False


class ReadFileInput(BaseModel):
    path: str | None = None
    paths: list[str] | None = Field(default=None, description="Read several files at once")

    @model_validator(mode="after")
    def _require_path(self) -> "ReadFileInput":
        if not self.path and not self.paths:
            raise ValueError("Provide path or paths")
        return self

    def all_paths(self) -> list[str]:
        paths = list(self.paths or [])
        if self.path and self.path not in paths:
            paths.insert(0, self.path)
        return paths


class SearchFilesInput(BaseModel):
    pattern: str = Field(description="Regular expression or plain text to look for")
    path: str = "."
    case_insensitive: bool = False
    max_results: int = Field(default=50, ge=1, le=500)


class WriteFileInput(BaseModel):
    path: str
    content: str


class Replacement(BaseModel):
    old: str = Field(min_length=1)
    new: str
    replace_all: bool = False


class EditFileInput(BaseModel):
    path: str
    replacements: list[Replacement] = Field(min_length=1)


class WorkspaceTool(Tool):
    """Base for tools confined to the workspace directory."""

    def __init__(self, workspace_dir: str) -> None:
        self.workspace_dir = Path(workspace_dir).resolve()
        self.workspace_dir.mkdir(parents=True, exist_ok=True)

    def _safe_path(self, path: str) -> Path:
        target = (self.workspace_dir / path).resolve()
        if target != self.workspace_dir and self.workspace_dir not in target.parents:
            raise ValueError("Path traversal detected")
        return target

    def _relative(self, target: Path) -> str:
        return target.relative_to(self.workspace_dir).as_posix()

    def _canonical(self, path: Any) -> str:
        """Workspace-relative POSIX form, so ./src/a.html and src/a.html are one file."""
        try:
            return self._relative(self._safe_path(str(path)))
        except ValueError:
            return str(path)

    def target(self, arguments: dict[str, Any]) -> str | None:
        path = arguments.get("path")
        return self._canonical(path) if path else None

    def _read(self, path: str) -> str:
        target = self._safe_path(path)
        if not target.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        return target.read_text(encoding="utf-8")

    def _walk(self, root: Path, recursive: bool = True):
        for entry in sorted(root.iterdir()):
            if entry.name in _SKIP_DIRS:
                continue
            if entry.is_dir():
                if recursive:
                    yield from self._walk(entry, recursive)
                continue
            yield entry


class FileExistsTool(WorkspaceTool):
    name = "file_exists"
    description = "Check whether a file exists before reading or editing it."
    input_schema = PathInput

    def run(self, data: BaseModel | dict[str, Any]) -> ToolResult:
        input_data = PathInput.model_validate(data)
        target = self._safe_path(input_data.path)
        if target.is_file():
            return ToolResult(output=f"exists: {input_data.path} ({target.stat().st_size} bytes)")
        if target.is_dir():
            return ToolResult(output=f"exists: {input_data.path} (directory)")
        return ToolResult(output=f"not found: {input_data.path}")


class ListFilesTool(WorkspaceTool):
    name = "list_files"
    description = "List files in a workspace directory."
    input_schema = ListFilesInput

    def run(self, data: BaseModel | dict[str, Any]) -> ToolResult:
        input_data = ListFilesInput.model_validate(data)
        root = self._safe_path(input_data.path)
        if not root.is_dir():
            raise FileNotFoundError(f"Directory not found: {input_data.path}")
        entries = [
            self._relative(entry)
            for entry in self._walk(root, input_data.recursive)
            if fnmatch.fnmatch(entry.name, input_data.pattern)
        ]
        if not entries:
            return ToolResult(output=f"No files in {input_data.path} matching {input_data.pattern}")
        return ToolResult(output="\n".join(entries))


class ReadFileTool(WorkspaceTool):
    name = "read_file"
    description = "Read one file (path) or several files (paths) from the workspace."
    input_schema = ReadFileInput

    def run(self, data: BaseModel | dict[str, Any]) -> ToolResult:
        input_data = ReadFileInput.model_validate(data)
        paths = input_data.all_paths()
        if len(paths) == 1:
            return ToolResult(output=self._read(paths[0]))
        sections = [f"=== {path} ===\n{self._read(path)}" for path in paths]
        return ToolResult(output="\n\n".join(sections))

    def target(self, arguments: dict[str, Any]) -> str | None:
        if arguments.get("path"):
            return self._canonical(arguments["path"])
        paths = arguments.get("paths") or []
        return self._canonical(paths[0]) if paths else None


class SearchFilesTool(WorkspaceTool):
    name = "search_files"
    description = "Search file contents in the workspace and return matching lines."
    input_schema = SearchFilesInput

    def run(self, data: BaseModel | dict[str, Any]) -> ToolResult:
        input_data = SearchFilesInput.model_validate(data)
        root = self._safe_path(input_data.path)
        flags = re.IGNORECASE if input_data.case_insensitive else 0
        try:
            matcher = re.compile(input_data.pattern, flags)
        except re.error:
            matcher = re.compile(re.escape(input_data.pattern), flags)
        files = [root] if root.is_file() else list(self._walk(root))
        hits: list[str] = []
        for file_path in files:
            try:
                lines = file_path.read_text(encoding="utf-8").splitlines()
            except (UnicodeDecodeError, OSError):
                continue
            for number, line in enumerate(lines, start=1):
                if matcher.search(line):
                    hits.append(f"{self._relative(file_path)}:{number}: {line.strip()[:200]}")
                    if len(hits) >= input_data.max_results:
                        return ToolResult(output="\n".join(hits + ["(results truncated)"]))
        if not hits:
            return ToolResult(output=f"No matches for {input_data.pattern!r}")
        return ToolResult(output="\n".join(hits))


class WriteFileTool(WorkspaceTool):
    name = "write_file"
    description = "Create or fully overwrite a file in the workspace."
    input_schema = WriteFileInput
    side_effect = SideEffect.MUTATING

    def run(self, data: BaseModel | dict[str, Any]) -> ToolResult:
        input_data = WriteFileInput.model_validate(data)
        target = self._safe_path(input_data.path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(input_data.content, encoding="utf-8")
        return ToolResult(output=f"Wrote {len(input_data.content)} characters to {input_data.path}")


class EditFileTool(WorkspaceTool):
    name = "edit_file"
    description = (
        "Apply exact text replacements to an existing file. Each old string must "
        "match exactly once unless replace_all is set."
    )
    input_schema = EditFileInput
    side_effect = SideEffect.MUTATING

    def run(self, data: BaseModel | dict[str, Any]) -> ToolResult:
        input_data = EditFileInput.model_validate(data)
        content = self._read(input_data.path)
        for index, replacement in enumerate(input_data.replacements, start=1):
            count = content.count(replacement.old)
            if count == 0:
                raise ValueError(f"Replacement {index}: text not found in {input_data.path}")
            if count > 1 and not replacement.replace_all:
                raise ValueError(
                    f"Replacement {index}: text matches {count} times in {input_data.path}; "
                    "include more context or set replace_all"
                )
            content = content.replace(replacement.old, replacement.new)
        self._safe_path(input_data.path).write_text(content, encoding="utf-8")
        return ToolResult(
            output=f"Applied {len(input_data.replacements)} replacement(s) to {input_data.path}"
        )


def workspace_tools(workspace_dir: str) -> list[Tool]:
    return [
        FileExistsTool(workspace_dir),
        ListFilesTool(workspace_dir),
        ReadFileTool(workspace_dir),
        SearchFilesTool(workspace_dir),
        WriteFileTool(workspace_dir),
        EditFileTool(workspace_dir),
    ]
