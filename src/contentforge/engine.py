"""Request front door: route, then clarify, answer, build or run the agent loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable
from uuid import uuid4

from contentforge.agent import AgentLoop
from contentforge.failures import AgentLoopError, ModelInvocationError
from contentforge.models.base import ModelRequest
from contentforge.pipeline.models import BuildPipelineRun
from contentforge.pipeline.runner import BuildPipeline
from contentforge.routing import Intent, IntentRouter, RouteContext, RoutingPlan
from contentforge.trace import TraceRecorder
from contentforge.util.context_trim import trim_messages
from contentforge.util.logging import get_logger

logger = get_logger(__name__)

FAST_PATH_SYSTEM_PROMPT = (
    "You are a friendly assistant for a small site of web games and pages. "
    "Answer conversationally and briefly."
)


class ReplyPath(str, Enum):
    CLARIFY = "clarify"
    FAST = "fast"
    BUILD = "build"
    AGENT = "agent"


@dataclass(frozen=True)
class AssistantReply:
    text: str
    path: ReplyPath
    plan: RoutingPlan
    build_id: str | None = None
    iterations: int | None = None
    termination_reason: str | None = None
    actions_used: list[str] = field(default_factory=list)
    mutated_files: list[str] = field(default_factory=list)
    trace_path: str | None = None


class Assistant:
    def __init__(
        self,
        router: IntentRouter,
        agent: AgentLoop,
        pipeline: BuildPipeline | None = None,
        fast_path_min_confidence: float = 0.5,
        fast_path_max_words: int = 12,
        trace_dir: str | None = None,
    ) -> None:
        self.router = router
        self.agent = agent
        self.pipeline = pipeline
        self.fast_path_min_confidence = fast_path_min_confidence
        self.fast_path_max_words = fast_path_max_words
        self.trace_dir = trace_dir

    def use_fast_path(self, plan: RoutingPlan, message: str) -> bool:
        """Plain chat with a confident route and a short message skips tool access."""
        return (
            plan.intent is Intent.CHAT
            and not plan.action_sequence
            and not plan.clarify_first
            and plan.confidence >= self.fast_path_min_confidence
            and len(message.split()) <= self.fast_path_max_words
        )

    def handle(
        self,
        message: str,
        prior_messages: list[dict[str, Any]] | None = None,
        recent_files: Iterable[str] = (),
    ) -> AssistantReply:
        recent = tuple(recent_files)
        plan = self.router.classify(message, RouteContext(recent_files=recent))
        if plan.clarify_first and plan.clarify_question:
            return AssistantReply(text=plan.clarify_question, path=ReplyPath.CLARIFY, plan=plan)
        if plan.intent is Intent.CREATE and self.pipeline is not None:
            return self._build(message, plan)
        if self.use_fast_path(plan, message):
            return self._fast_reply(message, prior_messages, plan)
        return self._agent_reply(message, prior_messages, plan, recent)

    def _fast_reply(
        self, message: str, prior_messages: list[dict[str, Any]] | None, plan: RoutingPlan
    ) -> AssistantReply:
        policy = self.agent.policy
        history = [item for item in prior_messages or [] if item.get("role") in ("user", "assistant")]
        history = [item for item in history if item.get("content")]
        messages = [{"role": "system", "content": FAST_PATH_SYSTEM_PROMPT}]
        messages.extend(trim_messages(history, policy.max_prior_message_chars, policy.max_prior_turns))
        messages.append({"role": "user", "content": message})
        request = ModelRequest(
            model=self.agent.selection.current,
            messages=messages,
            max_tokens=policy.max_output_tokens,
            temperature=policy.temperature,
            private=policy.private,
        )
        try:
            response = self.agent.invoker.invoke(request)
        except ModelInvocationError as exc:
            logger.error("Fast reply failed: %s", exc)
            return AssistantReply(
                text=f"I could not reach the model just now ({exc.category.value}). Please try again.",
                path=ReplyPath.FAST,
                plan=plan,
            )
        return AssistantReply(text=response.content.strip(), path=ReplyPath.FAST, plan=plan)

    def _build(self, message: str, plan: RoutingPlan) -> AssistantReply:
        hints = plan.parameter_hints.get("write_file", {})
        preferred_type = str(hints.get("content_type") or "auto")
        run = self.pipeline.run(message, preferred_type=preferred_type)
        return AssistantReply(
            text=self._build_summary(run),
            path=ReplyPath.BUILD,
            plan=plan,
            build_id=run.build_id,
            iterations=len(run.attempts),
            termination_reason=run.stage.value,
            mutated_files=list(run.final_artifact_refs),
        )

    def _build_summary(self, run: BuildPipelineRun) -> str:
        if run.ok and run.plan is not None:
            report = run.last_report
            score = f", score {report.score}/100" if report else ""
            parts = [f"Built {run.plan.title} ({', '.join(run.final_artifact_refs)})."]
            if run.docs and run.docs.release_notes:
                parts.append(run.docs.release_notes)
            parts.append(f"(build {run.build_id}{score})")
            return " ".join(parts)
        if run.final_issues:
            codes = ", ".join(issue.code for issue in run.final_issues)
            return (
                f"The build did not pass its checks after {len(run.attempts)} attempts "
                f"(build {run.build_id}). Outstanding issues: {codes}."
            )
        return f"The build failed: {run.error or 'unknown error'} (build {run.build_id})."

    def _agent_reply(
        self,
        message: str,
        prior_messages: list[dict[str, Any]] | None,
        plan: RoutingPlan,
        recent_files: tuple[str, ...],
    ) -> AssistantReply:
        trace = None
        if self.trace_dir:
            trace = TraceRecorder(trace_id=uuid4().hex, trace_dir=self.trace_dir)
        try:
            result = self.agent.run(
                message, prior_messages=prior_messages, plan=plan, recent_files=recent_files, trace=trace
            )
        except AgentLoopError as exc:
            logger.error("Agent loop failed: %s", exc)
            return AssistantReply(
                text=(
                    f"Something went wrong talking to the model after {exc.iterations} steps "
                    f"({exc.category.value}). Please try again in a moment."
                ),
                path=ReplyPath.AGENT,
                plan=plan,
                iterations=exc.iterations,
            )
        return AssistantReply(
            text=result.text,
            path=ReplyPath.AGENT,
            plan=plan,
            iterations=result.iterations,
            termination_reason=result.termination_reason.value,
            actions_used=list(result.actions_used),
            mutated_files=list(result.mutated_files),
            trace_path=result.trace_path,
        )
