"""Plan, build, test and document with bounded retries."""

from __future__ import annotations

import time
from typing import Any, Callable
from uuid import uuid4

from contentforge.failures import ModelInvocationError, PipelineError
from contentforge.pipeline.base import Builder, Planner, Scribe, Tester
from contentforge.pipeline.log_store import BuildLogStore
from contentforge.pipeline.models import (
    BuildAttempt,
    BuildOutput,
    BuildPipelineRun,
    BuildPlan,
    BuildStage,
    Issue,
    QualityReport,
    StageRecord,
)
from contentforge.util.logging import get_logger

logger = get_logger(__name__)

StatusCallback = Callable[[str], None]


def new_build_id() -> str:
    return f"{int(time.time() * 1000)}-{uuid4().hex[:6]}"


def _status_message(stage: BuildStage, attempt: int | None, max_attempts: int) -> str:
    if stage is BuildStage.PLANNING:
        return "sketching the plan..."
    if stage is BuildStage.BUILDING:
        return f"building (attempt {attempt}/{max_attempts})..."
    if stage is BuildStage.TESTING:
        return f"testing (attempt {attempt}/{max_attempts})..."
    if stage is BuildStage.DOCUMENTING:
        return "writing docs and metadata..."
    if stage is BuildStage.SUCCESS:
        return "build finished"
    return "build failed"


class BuildPipeline:
    """PLANNING -> BUILDING -> TESTING -> (retry BUILDING | DOCUMENTING -> SUCCESS | FAILED).

    Each transition is written to the log store before the stage it enters runs.
    Test feedback from a failed attempt is handed to the next build attempt.
    """

    def __init__(
        self,
        planner: Planner,
        builder: Builder,
        tester: Tester,
        scribe: Scribe,
        log_store: BuildLogStore,
        max_attempts: int = 3,
        on_status: StatusCallback | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.planner = planner
        self.builder = builder
        self.tester = tester
        self.scribe = scribe
        self.log_store = log_store
        self.max_attempts = max_attempts
        self.on_status = on_status

    def _enter(
        self,
        run: BuildPipelineRun,
        stage: BuildStage,
        attempt: int | None,
        max_attempts: int,
        payload: dict[str, Any] | None = None,
    ) -> None:
        record = StageRecord(build_id=run.build_id, stage=stage, attempt=attempt, payload=payload or {})
        self.log_store.append(record)
        run.stage_log.append(record)
        run.stage = stage
        logger.info(
            "Build %s -> %s%s", run.build_id, stage.value, f" (attempt {attempt})" if attempt else ""
        )
        if self.on_status is not None:
            self.on_status(_status_message(stage, attempt, max_attempts))

    def run(
        self,
        user_prompt: str,
        preferred_type: str = "auto",
        max_attempts: int | None = None,
        build_id: str | None = None,
    ) -> BuildPipelineRun:
        limit = max_attempts if max_attempts is not None else self.max_attempts
        if limit < 1:
            raise ValueError("max_attempts must be at least 1")
        run = BuildPipelineRun(build_id=build_id or new_build_id(), user_prompt=user_prompt)
        try:
            self._run_stages(run, preferred_type, limit)
        except (PipelineError, ModelInvocationError, OSError) as exc:
            logger.error("Build %s failed during %s: %s", run.build_id, run.stage.value, exc)
            failed_stage = run.stage.value
            run.error = str(exc)
            last = run.last_report
            if last is not None:
                run.final_issues = list(last.issues)
                run.final_warnings = list(last.warnings)
            self._enter(
                run,
                BuildStage.FAILED,
                len(run.attempts) or None,
                limit,
                {"error": run.error, "failed_stage": failed_stage},
            )
        return run

    def _run_stages(self, run: BuildPipelineRun, preferred_type: str, limit: int) -> None:
        recent_issues = self.log_store.summarize_recent_issues()
        self._enter(
            run,
            BuildStage.PLANNING,
            None,
            limit,
            {"user_prompt": run.user_prompt, "preferred_type": preferred_type, "recent_issues": recent_issues},
        )
        plan = self.planner.plan(run.user_prompt, preferred_type, recent_issues)
        run.plan = plan

        payload: dict[str, Any] = {"plan": plan.model_dump(mode="json")}
        attempt = 1
        output, report = self._attempt(run, plan, attempt, [], limit, payload)
        while not report.ok and attempt < limit:
            attempt += 1
            payload = {"test_result": report.model_dump(mode="json")}
            output, report = self._attempt(run, plan, attempt, list(report.issues), limit, payload)
        payload = {"test_result": report.model_dump(mode="json")}

        if not report.ok:
            run.final_issues = list(report.issues)
            run.final_warnings = list(report.warnings)
            run.error = f"Unresolved issues after {limit} attempts"
            self._enter(run, BuildStage.FAILED, limit, limit, payload)
            logger.warning("Build %s failed after %d attempts", run.build_id, limit)
            return

        self._enter(run, BuildStage.DOCUMENTING, attempt, limit, payload)
        docs = self.scribe.document(plan, output, report, run.build_id)
        run.docs = docs
        run.final_warnings = list(report.warnings)
        run.final_artifact_refs = list(output.files)
        if docs.metadata_path:
            run.final_artifact_refs.append(docs.metadata_path)
        self._enter(
            run,
            BuildStage.SUCCESS,
            attempt,
            limit,
            {"artifacts": run.final_artifact_refs, "score": report.score},
        )

    def _attempt(
        self,
        run: BuildPipelineRun,
        plan: BuildPlan,
        attempt: int,
        feedback: list[Issue],
        limit: int,
        payload: dict[str, Any],
    ) -> tuple[BuildOutput, QualityReport]:
        self._enter(run, BuildStage.BUILDING, attempt, limit, payload)
        output = self.builder.build(plan, attempt, feedback, run.build_id)
        self._enter(run, BuildStage.TESTING, attempt, limit, {"artifacts": output.files})
        report = self.tester.test(plan, output)
        run.attempts.append(
            BuildAttempt(
                attempt_number=attempt,
                plan_snapshot=plan,
                produced_artifacts=list(output.files),
                test_result=report,
                feedback_for_next_attempt=[] if report.ok else list(report.issues),
            )
        )
        return output, report
