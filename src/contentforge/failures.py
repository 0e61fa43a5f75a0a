"""Failure taxonomy and errors."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    QUOTA_EXCEEDED = "quota-exceeded"
    TRANSIENT_SERVER = "transient-server"
    CLIENT_INVALID = "client-invalid"


class FailureTag(str, Enum):
    """Failure categories recorded in traces."""

    PARSE_ERROR = "PARSE_ERROR"
    TOOL_ERROR = "TOOL_ERROR"
    UNKNOWN_TOOL = "UNKNOWN_TOOL"
    SCOPE_VIOLATION = "SCOPE_VIOLATION"
    BUDGET_EXHAUSTED = "BUDGET_EXHAUSTED"
    NO_PROGRESS = "NO_PROGRESS"


@dataclass(frozen=True)
class FailureEvent:
    """Structured failure event for traces."""

    tag: FailureTag
    reason: str
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"tag": self.tag.value, "reason": self.reason, "details": self.details or {}}


class ModelInvocationError(RuntimeError):
    """Raised when a model call fails; ``category`` tells callers how to react."""

    category: ErrorCategory = ErrorCategory.CLIENT_INVALID

    def __init__(self, message: str, model: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.model = model
        self.status_code = status_code


class TransientServerError(ModelInvocationError):
    category = ErrorCategory.TRANSIENT_SERVER


class ClientInvalidError(ModelInvocationError):
    category = ErrorCategory.CLIENT_INVALID


class QuotaExceededError(ModelInvocationError):
    category = ErrorCategory.QUOTA_EXCEEDED

    def __init__(
        self,
        message: str,
        model: str | None = None,
        status_code: int | None = None,
        affordable_tokens: int | None = None,
        requested_tokens: int | None = None,
    ) -> None:
        super().__init__(message, model=model, status_code=status_code)
        self.affordable_tokens = affordable_tokens
        self.requested_tokens = requested_tokens


class AgentLoopError(RuntimeError):
    """Raised when the agent loop cannot continue; carries the iteration reached."""

    def __init__(self, message: str, iterations: int, cause: ModelInvocationError) -> None:
        super().__init__(f"{message} (after {iterations} iterations)")
        self.iterations = iterations
        self.category = cause.category


class PipelineError(RuntimeError):
    """Raised by build pipeline stages that cannot produce a usable result."""
