"""Model-backed page generation."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from contentforge.failures import PipelineError
from contentforge.pipeline.base import Builder, ModelBackedStage
from contentforge.pipeline.models import BuildOutput, BuildPlan, Issue
from contentforge.util.logging import get_logger

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"```[\w-]*[ \t]*\n?")
_BODY_RE = re.compile(r"<body[^>]*>", re.IGNORECASE)

VIEWPORT_TAG = '<meta name="viewport" content="width=device-width, initial-scale=1.0">'
THEME_LINK = '<link rel="stylesheet" href="../page-theme.css">'
HOME_LINK = '<a href="../index.html" class="home-link">&larr; HOME</a>'

CONTROL_REQUIREMENTS = {
    "directional-movement": "MUST include a D-pad .mobile-controls block with a handleDirection() function",
    "direct-touch": "NO D-pad; use direct touch/click handlers on the canvas or elements, or keyboard listeners",
    "hybrid-controls": "MUST include BOTH a D-pad .mobile-controls block AND action buttons",
    "form-based": "Use form elements (<input>, <select>, <button>) and persist state with localStorage",
    "passive-scroll": "NO game controls at all; scroll-based content only",
}

BUILDER_SYSTEM_PROMPT = (
    "You write complete single-file HTML pages. Reply with the HTML document only, "
    "starting with <!DOCTYPE html>, with inline CSS and JavaScript and no commentary."
)


def clean_markdown_fences(content: str) -> str:
    return _FENCE_RE.sub("", content).replace("```", "").strip()


def ensure_essential_elements(html: str) -> str:
    """Insert the viewport tag, theme stylesheet and home link when missing."""
    content = html
    if "viewport" not in content:
        content = content.replace("</head>", f"    {VIEWPORT_TAG}\n</head>", 1)
    if "page-theme.css" not in content:
        content = content.replace("</head>", f"    {THEME_LINK}\n</head>", 1)
    if "index.html" not in content and "HOME" not in content:
        content = _BODY_RE.sub(lambda match: f"{match.group(0)}\n    {HOME_LINK}", content, count=1)
    return content


class ModelBuilder(ModelBackedStage, Builder):
    system_prompt = BUILDER_SYSTEM_PROMPT

    def __init__(self, *args: Any, workspace_dir: str = ".", **kwargs: Any) -> None:
        kwargs.setdefault("max_tokens", 12000)
        super().__init__(*args, **kwargs)
        self.workspace_dir = Path(workspace_dir).resolve()

    def prompt(self, plan: BuildPlan, attempt: int, feedback: list[Issue]) -> str:
        article = "an" if plan.content_type[:1] in "aeiou" else "a"
        pattern = plan.interaction_pattern
        requirement = CONTROL_REQUIREMENTS.get(pattern, CONTROL_REQUIREMENTS["direct-touch"])
        lines = [
            f"Build {article} {plan.content_type}: {plan.title}",
            "",
            "Plan details:",
            f"- Content type: {plan.content_type}",
            f"- Slug: {plan.slug}",
            f"- Files to generate: {', '.join(plan.files)}",
            f"- Key features: {', '.join(plan.features) or 'none listed'}",
            f"- Interaction pattern: {pattern}",
            f"- Collection: {plan.collection}",
            "",
            f'Control requirements for "{pattern}": {requirement}',
            "",
            "Requirements:",
            f"1. Generate complete, working code appropriate for {plan.content_type}.",
            "2. Include the mobile-first elements: viewport meta tag and responsive @media breakpoints.",
            '3. Link the shared stylesheet with <link rel="stylesheet" href="../page-theme.css">.',
            "4. No placeholders or TODO comments.",
        ]
        if attempt > 1 and feedback:
            lines.extend(["", "PREVIOUS ATTEMPT FAILED WITH THESE ISSUES:"])
            lines.extend(
                f"{index}. [{issue.severity.value}] {issue.code}: {issue.message}"
                for index, issue in enumerate(feedback, start=1)
            )
            lines.append("Fix ALL of these issues in this attempt.")
        return "\n".join(lines)

    def build(self, plan: BuildPlan, attempt: int, feedback: list[Issue], build_id: str) -> BuildOutput:
        logger.info("Build %s: generating %s (attempt %d)", build_id, plan.files[0], attempt)
        raw = self._complete(self.prompt(plan, attempt, feedback))
        html = ensure_essential_elements(clean_markdown_fences(raw))
        self._write(plan.files[0], html)
        js_content = None
        if len(plan.files) > 1 and plan.files[1].endswith(".js"):
            js_prompt = (
                f"Generate the JavaScript file {plan.files[1]} for {plan.title}. It must work with "
                f"this HTML page:\n\n{html}\n\nInclude touchstart handlers with click fallbacks. "
                "Return only the JavaScript code."
            )
            js_content = clean_markdown_fences(self._complete(js_prompt))
            self._write(plan.files[1], js_content)
        return BuildOutput(files=list(plan.files), html_content=html, js_content=js_content, attempt=attempt)

    def _write(self, relative: str, content: str) -> None:
        target = (self.workspace_dir / relative).resolve()
        if self.workspace_dir not in target.parents:
            raise PipelineError(f"Refusing to write outside the workspace: {relative}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise PipelineError(f"Could not write {relative}: {exc}") from exc
        logger.info("Wrote %s (%d chars)", relative, len(content))
