"""Shared construction helpers for models, tools, the loop and the pipeline."""

from __future__ import annotations

import json

from contentforge.agent import AgentLoop
from contentforge.config import Settings
from contentforge.engine import Assistant
from contentforge.models.base import BaseChatModel, ModelSelection
from contentforge.models.mock import MockChatModel
from contentforge.models.openai_compat import OpenAICompatChatModel
from contentforge.models.resilient import FailureCounterStore, ResilientInvoker
from contentforge.pipeline.builder import ModelBuilder
from contentforge.pipeline.log_store import JsonlBuildLogStore
from contentforge.pipeline.planner import ModelPlanner
from contentforge.pipeline.runner import BuildPipeline, StatusCallback
from contentforge.pipeline.scribe import ModelScribe
from contentforge.pipeline.tester import QualityTester
from contentforge.policy import LoopPolicy
from contentforge.routing import IntentRouter, RouterConfidence
from contentforge.tools.builtins.filesystem import workspace_tools
from contentforge.tools.builtins.model_switch import SetModelTool
from contentforge.tools.executor import ToolExecutor
from contentforge.tools.registry import ToolRegistry


def build_model(settings: Settings, use_mock: bool = False) -> BaseChatModel:
    if use_mock or not settings.openai_api_key:
        return MockChatModel()
    extra_headers = None
    if settings.openai_extra_headers:
        extra_headers = json.loads(settings.openai_extra_headers)
    return OpenAICompatChatModel(
        base_url=settings.openai_base_url,
        api_key=settings.openai_api_key,
        timeout_seconds=settings.openai_timeout_seconds,
        max_retries=settings.transport_retries,
        backoff_seconds=settings.backoff_seconds,
        extra_headers=extra_headers,
        disable_tool_choice=settings.openai_disable_tool_choice,
        force_chatcompletions_path=settings.openai_force_chatcompletions_path,
    )


def build_selection(settings: Settings) -> ModelSelection:
    return ModelSelection(
        current=settings.resolve_model(settings.openai_model), presets=dict(settings.model_presets)
    )


def build_invoker(
    settings: Settings, model: BaseChatModel, counters: FailureCounterStore | None = None
) -> ResilientInvoker:
    return ResilientInvoker(
        model,
        counters or FailureCounterStore(settings.counter_store_size),
        fallback_models=settings.fallback_models,
        failure_threshold=settings.failure_threshold,
        max_attempts=settings.invocation_attempts,
        quota_reduction_ratio=settings.quota_reduction_ratio,
        min_output_tokens=settings.quota_min_output_tokens,
    )


def build_registry(settings: Settings, selection: ModelSelection) -> ToolRegistry:
    registry = ToolRegistry()
    registry.register_all(workspace_tools(settings.workspace_dir))
    registry.register(SetModelTool(selection))
    return registry


def build_policy(settings: Settings) -> LoopPolicy:
    return LoopPolicy(
        max_iterations=settings.max_iterations,
        max_read_only_iterations=settings.max_read_only_iterations,
        max_output_tokens=settings.max_output_tokens,
        temperature=settings.temperature,
        private=settings.private_mode,
        max_prior_message_chars=settings.max_prior_message_chars,
        max_prior_turns=settings.max_prior_turns,
    )


def build_router(settings: Settings) -> IntentRouter:
    return IntentRouter(
        confidence=RouterConfidence.from_overrides(settings.router_confidence),
        content_dir=settings.content_dir,
    )


def build_pipeline(
    settings: Settings,
    invoker: ResilientInvoker,
    selection: ModelSelection,
    on_status: StatusCallback | None = None,
) -> BuildPipeline:
    model = settings.resolve_model(settings.build_model) if settings.build_model else selection.current
    common = {"private": settings.private_mode}
    return BuildPipeline(
        planner=ModelPlanner(invoker, model, content_dir=settings.content_dir, **common),
        builder=ModelBuilder(invoker, model, workspace_dir=settings.workspace_dir, **common),
        tester=QualityTester(),
        scribe=ModelScribe(invoker, model, workspace_dir=settings.workspace_dir, **common),
        log_store=JsonlBuildLogStore(settings.build_log_dir),
        max_attempts=settings.build_max_attempts,
        on_status=on_status,
    )


def build_assistant(
    settings: Settings,
    model: BaseChatModel | None = None,
    counters: FailureCounterStore | None = None,
    on_status: StatusCallback | None = None,
) -> Assistant:
    chat_model = model or build_model(settings)
    selection = build_selection(settings)
    invoker = build_invoker(settings, chat_model, counters)
    registry = build_registry(settings, selection)
    agent = AgentLoop(
        invoker,
        registry,
        selection,
        policy=build_policy(settings),
        executor=ToolExecutor(registry, max_output_chars=settings.max_tool_output_chars),
    )
    return Assistant(
        router=build_router(settings),
        agent=agent,
        pipeline=build_pipeline(settings, invoker, selection, on_status),
        fast_path_min_confidence=settings.fast_path_min_confidence,
        fast_path_max_words=settings.fast_path_max_words,
        trace_dir=settings.trace_dir,
    )
