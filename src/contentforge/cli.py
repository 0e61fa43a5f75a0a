"""Command-line interface."""

from __future__ import annotations

import argparse
from typing import Any

from contentforge.config import Settings
from contentforge.factory import build_assistant, build_model


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="ContentForge CLI")
    parser.add_argument("request", type=str, help="Request to handle")
    parser.add_argument("--base-url", dest="base_url")
    parser.add_argument("--api-key", dest="api_key")
    parser.add_argument("--model", dest="model")
    parser.add_argument("--workspace", dest="workspace")
    parser.add_argument("--content-dir", dest="content_dir")
    parser.add_argument("--trace-dir", dest="trace_dir")
    parser.add_argument("--max-iterations", type=int, dest="max_iterations")
    parser.add_argument("--max-read-only-iterations", type=int, dest="max_read_only_iterations")
    parser.add_argument("--build-attempts", type=int, dest="build_max_attempts")
    parser.add_argument("--recent-file", action="append", dest="recent_files", default=[])
    parser.add_argument("--public", action="store_true", dest="public")
    parser.add_argument("--mock", action="store_true", dest="mock")
    return parser.parse_args(argv)


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    data: dict[str, Any] = settings.model_dump()
    if args.base_url:
        data["openai_base_url"] = args.base_url
    if args.api_key:
        data["openai_api_key"] = args.api_key
    if args.model:
        data["openai_model"] = args.model
    if args.workspace:
        data["workspace_dir"] = args.workspace
    if args.content_dir:
        data["content_dir"] = args.content_dir
    if args.trace_dir:
        data["trace_dir"] = args.trace_dir
    if args.max_iterations:
        data["max_iterations"] = args.max_iterations
    if args.max_read_only_iterations:
        data["max_read_only_iterations"] = args.max_read_only_iterations
    if args.build_max_attempts:
        data["build_max_attempts"] = args.build_max_attempts
    if args.public:
        data["private_mode"] = False
    return Settings(**data)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    settings = apply_overrides(Settings(), args)
    model = build_model(settings, use_mock=args.mock)
    assistant = build_assistant(settings, model=model, on_status=lambda message: print(f"... {message}"))
    reply = assistant.handle(args.request, recent_files=args.recent_files)
    print("Route:", f"{reply.plan.intent.value} via {reply.plan.rule} ({reply.path.value})")
    if reply.actions_used:
        print("Actions used:", ", ".join(reply.actions_used))
    if reply.build_id:
        print("Build:", reply.build_id)
    print("Reply:\n", reply.text)


if __name__ == "__main__":
    main()
