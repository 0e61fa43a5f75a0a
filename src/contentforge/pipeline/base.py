"""Collaborator interfaces for the build pipeline."""

from __future__ import annotations

from abc import ABC, abstractmethod

from contentforge.models.base import ModelRequest
from contentforge.models.resilient import ResilientInvoker
from contentforge.pipeline.models import BuildDocs, BuildOutput, BuildPlan, Issue, QualityReport


class Planner(ABC):
    @abstractmethod
    def plan(self, user_prompt: str, preferred_type: str, recent_issues: str) -> BuildPlan:
        raise NotImplementedError


class Builder(ABC):
    @abstractmethod
    def build(self, plan: BuildPlan, attempt: int, feedback: list[Issue], build_id: str) -> BuildOutput:
        raise NotImplementedError


class Tester(ABC):
    @abstractmethod
    def test(self, plan: BuildPlan, output: BuildOutput) -> QualityReport:
        raise NotImplementedError


class Scribe(ABC):
    @abstractmethod
    def document(
        self, plan: BuildPlan, output: BuildOutput, report: QualityReport, build_id: str
    ) -> BuildDocs:
        raise NotImplementedError


class ModelBackedStage:
    """Shared single-prompt model call for pipeline stages."""

    system_prompt = ""

    def __init__(
        self,
        invoker: ResilientInvoker,
        model: str,
        max_tokens: int = 4000,
        temperature: float = 0.7,
        private: bool = True,
    ) -> None:
        self.invoker = invoker
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.private = private

    def _complete(self, prompt: str) -> str:
        messages = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.append({"role": "user", "content": prompt})
        response = self.invoker.invoke(
            ModelRequest(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                private=self.private,
            )
        )
        return response.content
