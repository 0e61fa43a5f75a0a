"""Model-backed build planning."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from contentforge.failures import PipelineError
from contentforge.pipeline.base import ModelBackedStage, Planner
from contentforge.pipeline.models import BuildPlan
from contentforge.routing import slugify
from contentforge.util.json_repair import JsonRepairError, repair_json
from contentforge.util.logging import clip, get_logger

logger = get_logger(__name__)

PLANNER_SYSTEM_PROMPT = """You plan small, mobile-first web pages and games.
Return only a JSON object with these keys:
- slug: lowercase words joined by hyphens
- title: display title
- content_type: one of arcade-game, letter, recipe, infographic, story, utility
- files: list of files to create, the first one an .html file under the content directory
- features: list of short feature descriptions
- interaction_pattern: one of directional-movement, direct-touch, hybrid-controls, form-based, passive-scroll
- description: one sentence caption
- icon: a single emoji
- collection: the collection the page belongs to
"""


class ModelPlanner(ModelBackedStage, Planner):
    system_prompt = PLANNER_SYSTEM_PROMPT

    def __init__(self, *args: Any, content_dir: str = "src", **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.content_dir = content_dir.strip("/")

    def plan(self, user_prompt: str, preferred_type: str, recent_issues: str) -> BuildPlan:
        lines = [f"User request: {user_prompt}", ""]
        if preferred_type and preferred_type != "auto":
            lines.extend([f"Preferred type: {preferred_type}", ""])
        lines.extend(
            [
                "Recent patterns and issues to avoid:",
                recent_issues,
                "",
                f"Files live under {self.content_dir}/. Return the complete JSON plan.",
            ]
        )
        content = self._complete("\n".join(lines))
        try:
            data = repair_json(content)
        except JsonRepairError as exc:
            raise PipelineError(f"Planner returned unreadable plan: {exc}") from exc
        if not isinstance(data, dict):
            raise PipelineError("Planner returned a plan that is not a JSON object")
        plan = self._validate(self._fill_defaults(data, preferred_type))
        logger.info(
            "Plan created: %s (%s) files=%s", plan.title, plan.content_type, ", ".join(plan.files)
        )
        return plan

    def _fill_defaults(self, data: dict[str, Any], preferred_type: str) -> dict[str, Any]:
        data = dict(data)
        title = str(data.get("title") or data.get("slug") or "").strip()
        if title and not data.get("title"):
            data["title"] = title
        slug = slugify(str(data.get("slug") or title))
        if slug:
            data["slug"] = slug
        if not data.get("content_type") and preferred_type not in ("", "auto"):
            data["content_type"] = preferred_type
        if not data.get("files") and slug:
            data["files"] = [f"{self.content_dir}/{slug}.html"]
        return data

    def _validate(self, data: dict[str, Any]) -> BuildPlan:
        try:
            return BuildPlan.model_validate(data)
        except ValidationError as exc:
            logger.warning("Rejected plan %s", clip(str(data)))
            raise PipelineError(f"Planner returned an invalid plan: {exc.error_count()} errors") from exc
