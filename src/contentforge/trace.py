"""Trace recorder for agent runs."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from contentforge.failures import FailureEvent
from contentforge.util.logging import redact


@dataclass
class TraceRecorder:
    trace_id: str
    trace_dir: str
    started_at: float = field(default_factory=time.time)
    events: list[dict[str, Any]] = field(default_factory=list)

    def record(self, event_type: str, payload: dict[str, Any]) -> None:
        self.events.append(
            {
                "type": event_type,
                "timestamp": time.time(),
                "payload": payload,
            }
        )

    def record_routing(self, plan: dict[str, Any]) -> None:
        self.record("routing", plan)

    def record_model_response(self, model: str | None, content: str, tool_calls: list[dict[str, Any]]) -> None:
        self.record(
            "model_response",
            {"model": model, "content": redact(content), "tool_calls": tool_calls},
        )

    def record_tool_call(self, tool_name: str, arguments: Any, repairs: list[str]) -> None:
        self.record(
            "tool_call",
            {"tool_name": tool_name, "arguments": arguments, "repairs": repairs},
        )

    def record_tool_result(self, tool_name: str, ok: bool, summary: str) -> None:
        self.record(
            "tool_result",
            {"tool_name": tool_name, "ok": ok, "summary": redact(summary)},
        )

    def record_failure(self, event: FailureEvent) -> None:
        self.record("failure", event.to_dict())

    def finalize(self, stats: dict[str, Any]) -> str:
        trace_dir = Path(self.trace_dir)
        trace_dir.mkdir(parents=True, exist_ok=True)
        trace_path = trace_dir / f"{self.trace_id}.json"
        payload = {
            "trace_id": self.trace_id,
            "started_at": self.started_at,
            "ended_at": time.time(),
            "stats": stats,
            "events": self.events,
        }
        trace_path.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
        return str(trace_path)
