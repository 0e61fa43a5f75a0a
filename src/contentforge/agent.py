"""Bounded agent loop: model invocation plus tool execution until convergence."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Iterable

from contentforge.failures import AgentLoopError, FailureEvent, FailureTag, ModelInvocationError
from contentforge.models.base import ModelRequest, ModelResponse, ModelSelection, ToolCall
from contentforge.models.resilient import ResilientInvoker
from contentforge.policy import LoopPolicy
from contentforge.routing import Intent, RoutingPlan, routing_guidance
from contentforge.state import ConversationState
from contentforge.tools.executor import ToolExecutor
from contentforge.tools.registry import ToolRegistry
from contentforge.trace import TraceRecorder
from contentforge.util.context_trim import trim_messages
from contentforge.util.logging import clip, get_logger

logger = get_logger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a content assistant that builds and edits small web pages, games and "
    "documents in a git workspace. Use the provided tools to inspect files before "
    "changing them. Prefer edit_file for small changes and write_file for new files "
    "or full rewrites. When the work is done, reply with a short summary and no tool calls."
)


class TerminationReason(str, Enum):
    NATURAL_COMPLETION = "natural-completion"
    READ_ONLY_CEILING = "read-only-ceiling"
    ITERATION_CEILING = "iteration-ceiling"


@dataclass(frozen=True)
class AgentResult:
    text: str
    actions_used: list[str]
    iterations: int
    termination_reason: TerminationReason
    model: str | None = None
    mutated_files: list[str] = field(default_factory=list)
    trace_path: str | None = None


def _raw_arguments(call: ToolCall) -> str:
    if isinstance(call.arguments, str):
        return call.arguments
    return json.dumps(call.arguments)


class AgentLoop:
    """Drives the model through tool calls under hard iteration ceilings."""

    def __init__(
        self,
        invoker: ResilientInvoker,
        registry: ToolRegistry,
        selection: ModelSelection,
        policy: LoopPolicy | None = None,
        executor: ToolExecutor | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ) -> None:
        self.invoker = invoker
        self.registry = registry
        self.selection = selection
        self.policy = policy or LoopPolicy()
        self.executor = executor or ToolExecutor(registry)
        self.system_prompt = system_prompt

    def _tool_schemas(self) -> list[dict[str, Any]]:
        return [
            tool.openai_schema() for tool in self.registry.list() if self.policy.is_tool_allowed(tool.name)
        ]

    def _initial_state(
        self,
        user_message: str,
        prior_messages: list[dict[str, Any]] | None,
        plan: RoutingPlan | None,
        recent_files: Iterable[str],
    ) -> ConversationState:
        state = ConversationState(
            recent_files=list(recent_files),
            edit_scoped=plan is not None and plan.intent is Intent.EDIT,
        )
        state.append({"role": "system", "content": self.system_prompt})
        if plan is not None:
            guidance = routing_guidance(plan)
            if guidance:
                state.append({"role": "system", "content": guidance})
        if prior_messages:
            history = [message for message in prior_messages if message.get("role") != "system"]
            for message in trim_messages(
                history,
                max_chars=self.policy.max_prior_message_chars,
                max_turns=self.policy.max_prior_turns,
            ):
                state.append(message)
        state.append({"role": "user", "content": user_message})
        return state

    def _context(self, state: ConversationState) -> list[dict[str, Any]]:
        messages = list(state.messages)
        last = state.last_mutated_file
        if self.policy.inject_mutation_hint and last:
            messages.append(
                {
                    "role": "system",
                    "content": (
                        f"Most recently modified file: {last}. "
                        "Unless the user names another file, 'it' and 'that' refer to this file."
                    ),
                }
            )
        return messages

    def _invoke(self, state: ConversationState, model: str, tools: list[dict[str, Any]]) -> ModelResponse:
        request = ModelRequest(
            model=model,
            messages=self._context(state),
            tools=tools or None,
            max_tokens=self.policy.max_output_tokens,
            temperature=self.policy.temperature,
            private=self.policy.private,
        )
        try:
            return self.invoker.invoke(request)
        except ModelInvocationError as exc:
            logger.error("Model invocation failed at iteration %d: %s", state.iteration_count, exc)
            raise AgentLoopError(
                f"Model invocation failed ({exc.category.value})", state.iteration_count, exc
            ) from exc

    def run(
        self,
        user_message: str,
        prior_messages: list[dict[str, Any]] | None = None,
        plan: RoutingPlan | None = None,
        recent_files: Iterable[str] = (),
        trace: TraceRecorder | None = None,
    ) -> AgentResult:
        state = self._initial_state(user_message, prior_messages, plan, recent_files)
        if trace is not None and plan is not None:
            trace.record_routing({**asdict(plan), "intent": plan.intent.value})
        tools = self._tool_schemas()
        model = self.selection.current
        actions_used: list[str] = []

        while True:
            if state.iteration_count >= self.policy.max_iterations:
                if trace is not None:
                    trace.record_failure(
                        FailureEvent(FailureTag.BUDGET_EXHAUSTED, "iteration ceiling reached")
                    )
                text = (
                    f"I stopped after {state.iteration_count} steps without finishing. "
                    f"{self._changes_summary(state)}"
                )
                return self._finish(state, TerminationReason.ITERATION_CEILING, text, actions_used, model, trace)

            response = self._invoke(state, model, tools)
            model = response.requested_model or model
            if trace is not None:
                trace.record_model_response(
                    model,
                    response.content,
                    [{"name": call.name, "arguments": _raw_arguments(call)} for call in response.tool_calls],
                )

            if not response.tool_calls:
                state.record_iteration(read_only=False)
                state.append({"role": "assistant", "content": response.content})
                text = response.content.strip() or f"Done. {self._changes_summary(state)}"
                return self._finish(
                    state, TerminationReason.NATURAL_COMPLETION, text, actions_used, model, trace
                )

            call_ids = [
                call.id or f"call_{state.iteration_count + 1}_{index}"
                for index, call in enumerate(response.tool_calls)
            ]
            state.append(
                {
                    "role": "assistant",
                    "content": response.content or None,
                    "tool_calls": [
                        {
                            "id": call_id,
                            "type": "function",
                            "function": {"name": call.name, "arguments": _raw_arguments(call)},
                        }
                        for call_id, call in zip(call_ids, response.tool_calls)
                    ],
                }
            )
            read_only = all(self.registry.is_read_only(call.name) for call in response.tool_calls)
            for call_id, call in zip(call_ids, response.tool_calls):
                actions_used.append(call.name)
                execution = self.executor.execute(call, call_id, state)
                state.append(execution.message())
                if trace is not None:
                    trace.record_tool_call(call.name, execution.arguments, execution.repairs)
                    trace.record_tool_result(call.name, execution.ok, clip(execution.content, 500))
                    if execution.failure is not None:
                        trace.record_failure(execution.failure)
            state.record_iteration(read_only=read_only)

            if (
                read_only
                and not state.has_mutated
                and state.read_only_iteration_count >= self.policy.max_read_only_iterations
            ):
                if trace is not None:
                    trace.record_failure(
                        FailureEvent(FailureTag.NO_PROGRESS, "read-only ceiling reached")
                    )
                text = (
                    f"I could not make progress on this after {state.iteration_count} steps of "
                    "reading and searching without changing anything. Tell me which file to "
                    "change, or describe the change more specifically, and I will try again."
                )
                return self._finish(state, TerminationReason.READ_ONLY_CEILING, text, actions_used, model, trace)

    def _changes_summary(self, state: ConversationState) -> str:
        if not state.mutated_files:
            return "No files were changed."
        return f"Changed: {', '.join(state.mutated_files)}."

    def _finish(
        self,
        state: ConversationState,
        reason: TerminationReason,
        text: str,
        actions_used: list[str],
        model: str,
        trace: TraceRecorder | None,
    ) -> AgentResult:
        logger.info(
            "Agent loop finished: %s after %d iterations (%d read-only), actions=%s",
            reason.value,
            state.iteration_count,
            state.read_only_iteration_count,
            actions_used,
        )
        trace_path = None
        if trace is not None:
            trace_path = trace.finalize(
                {
                    "termination_reason": reason.value,
                    "iterations": state.iteration_count,
                    "read_only_iterations": state.read_only_iteration_count,
                    "actions_used": actions_used,
                    "mutated_files": state.mutated_files,
                    "model": model,
                }
            )
        return AgentResult(
            text=text,
            actions_used=actions_used,
            iterations=state.iteration_count,
            termination_reason=reason,
            model=model,
            mutated_files=list(state.mutated_files),
            trace_path=trace_path,
        )
