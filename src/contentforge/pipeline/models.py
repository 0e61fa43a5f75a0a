"""Build pipeline records."""

from __future__ import annotations

import time
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class BuildStage(str, Enum):
    PLANNING = "planning"
    BUILDING = "building"
    TESTING = "testing"
    DOCUMENTING = "documenting"
    SUCCESS = "success"
    FAILED = "failed"


TERMINAL_STAGES = (BuildStage.SUCCESS, BuildStage.FAILED)


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"


class Issue(BaseModel):
    code: str
    message: str
    severity: Severity = Severity.CRITICAL


class QualityReport(BaseModel):
    """Outcome of the testing stage; only critical issues block success."""

    ok: bool
    issues: list[Issue] = Field(default_factory=list)
    warnings: list[Issue] = Field(default_factory=list)
    score: int = 100
    passed_checks: list[str] = Field(default_factory=list)


class BuildPlan(BaseModel):
    slug: str = Field(pattern=r"^[a-z0-9][a-z0-9-]*$")
    title: str
    content_type: str = "arcade-game"
    files: list[str] = Field(min_length=1)
    features: list[str] = Field(default_factory=list)
    interaction_pattern: str = "direct-touch"
    description: str = ""
    icon: str = ""
    collection: str = "unsorted"

    @property
    def is_game(self) -> bool:
        return self.content_type == "arcade-game"


class BuildOutput(BaseModel):
    files: list[str]
    html_content: str
    js_content: str | None = None
    attempt: int = 1


class BuildAttempt(BaseModel):
    attempt_number: int
    plan_snapshot: BuildPlan
    produced_artifacts: list[str] = Field(default_factory=list)
    test_result: QualityReport
    feedback_for_next_attempt: list[Issue] = Field(default_factory=list)


class StageRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    build_id: str
    stage: BuildStage
    attempt: int | None = None
    timestamp: float = Field(default_factory=time.time)
    payload: dict[str, Any] = Field(default_factory=dict)


class BuildDocs(BaseModel):
    title: str
    description: str = ""
    icon: str = ""
    collection: str = "unsorted"
    release_notes: str = ""
    how_to_play: str | None = None
    metadata_path: str | None = None


class BuildPipelineRun(BaseModel):
    build_id: str
    user_prompt: str
    stage: BuildStage = BuildStage.PLANNING
    stage_log: list[StageRecord] = Field(default_factory=list)
    plan: BuildPlan | None = None
    attempts: list[BuildAttempt] = Field(default_factory=list)
    final_artifact_refs: list[str] = Field(default_factory=list)
    docs: BuildDocs | None = None
    final_issues: list[Issue] = Field(default_factory=list)
    final_warnings: list[Issue] = Field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.stage is BuildStage.SUCCESS

    @property
    def last_report(self) -> QualityReport | None:
        return self.attempts[-1].test_result if self.attempts else None
