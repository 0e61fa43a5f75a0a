"""Append-only build log storage."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections import Counter
from pathlib import Path

from contentforge.pipeline.models import StageRecord
from contentforge.util.logging import get_logger

logger = get_logger(__name__)

NO_RECENT_ISSUES = "Recent builds passed automated checks. Keep following the same structure."


class BuildLogStore(ABC):
    """Per-build append-only stage records."""

    @abstractmethod
    def append(self, record: StageRecord) -> None:
        raise NotImplementedError

    @abstractmethod
    def read(self, build_id: str) -> list[StageRecord]:
        raise NotImplementedError

    @abstractmethod
    def recent_runs(self, limit: int = 10) -> list[str]:
        """Return build ids, most recent first."""
        raise NotImplementedError

    def recent_issue_codes(self, limit: int = 10) -> list[str]:
        codes: list[str] = []
        for build_id in self.recent_runs(limit):
            for record in self.read(build_id):
                test_result = record.payload.get("test_result")
                if not isinstance(test_result, dict):
                    continue
                for issue in test_result.get("issues") or []:
                    codes.append(str(issue.get("code") or issue.get("message") or "UNKNOWN"))
        return codes

    def summarize_recent_issues(self, limit: int = 10, top: int = 5) -> str:
        counts = Counter(self.recent_issue_codes(limit))
        if not counts:
            return NO_RECENT_ISSUES
        lines = [f"- {code} (seen {count} times)" for code, count in counts.most_common(top)]
        return "\n".join(
            ["Recent recurrent issues from previous builds:", *lines, "Please avoid repeating them."]
        )


class InMemoryBuildLogStore(BuildLogStore):
    def __init__(self) -> None:
        self._records: dict[str, list[StageRecord]] = {}

    def append(self, record: StageRecord) -> None:
        self._records.setdefault(record.build_id, []).append(record)

    def read(self, build_id: str) -> list[StageRecord]:
        return list(self._records.get(build_id, []))

    def recent_runs(self, limit: int = 10) -> list[str]:
        return list(reversed(list(self._records)))[:limit]


class JsonlBuildLogStore(BuildLogStore):
    """One JSON-lines file per build id under ``log_dir``."""

    def __init__(self, log_dir: str | Path) -> None:
        self.log_dir = Path(log_dir)

    def _path(self, build_id: str) -> Path:
        return self.log_dir / f"{build_id}.jsonl"

    def append(self, record: StageRecord) -> None:
        self.log_dir.mkdir(parents=True, exist_ok=True)
        with self._path(record.build_id).open("a", encoding="utf-8") as handle:
            handle.write(record.model_dump_json() + "\n")

    def read(self, build_id: str) -> list[StageRecord]:
        path = self._path(build_id)
        if not path.exists():
            return []
        records = []
        for line_number, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
            if not line.strip():
                continue
            try:
                records.append(StageRecord.model_validate(json.loads(line)))
            except (json.JSONDecodeError, ValueError):
                logger.warning("Skipping unreadable build log line %s:%d", path, line_number)
        return records

    def recent_runs(self, limit: int = 10) -> list[str]:
        if not self.log_dir.is_dir():
            return []
        paths = sorted(
            self.log_dir.glob("*.jsonl"),
            key=lambda path: (path.stat().st_mtime, path.name),
            reverse=True,
        )
        return [path.stem for path in paths[:limit]]
