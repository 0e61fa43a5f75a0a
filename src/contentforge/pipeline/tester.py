"""Automated quality checks for generated pages."""

from __future__ import annotations

import re
from dataclasses import dataclass

from contentforge.pipeline.base import Tester
from contentforge.pipeline.models import BuildOutput, BuildPlan, Issue, QualityReport, Severity
from contentforge.util.logging import get_logger

logger = get_logger(__name__)

CRITICAL_PENALTY = 20
WARNING_PENALTY = 5
STRUCTURAL_BONUS = 5
MAX_CANVAS_WIDTH = 450

_CANVAS_WIDTH_RE = re.compile(r"<canvas[^>]*width=[\"'](\d+)[\"']", re.IGNORECASE)
_INCOMPLETE_MARKERS = ("// TODO", "// FIXME", "// ...", "/* ... */")


@dataclass(frozen=True)
class StructuralCheck:
    name: str
    markers: tuple[str, ...]

    def passes(self, html: str) -> bool:
        lowered = html.lower()
        return any(marker in lowered for marker in self.markers)


STRUCTURAL_CHECKS = (
    StructuralCheck("semantic_main", ("<main",)),
    StructuralCheck("aria_labels", ("aria-label",)),
    StructuralCheck("responsive_breakpoints", ("@media",)),
    StructuralCheck("reduced_motion", ("prefers-reduced-motion",)),
)


def score_report(issues: list[Issue], warnings: list[Issue], passed_checks: list[str]) -> int:
    score = 100
    score -= CRITICAL_PENALTY * len(issues)
    score -= WARNING_PENALTY * len(warnings)
    score += STRUCTURAL_BONUS * len(passed_checks)
    return max(0, min(100, score))


def _critical(code: str, message: str) -> Issue:
    return Issue(code=code, message=message, severity=Severity.CRITICAL)


def _warning(code: str, message: str) -> Issue:
    return Issue(code=code, message=message, severity=Severity.WARNING)


class QualityTester(Tester):
    """String and regex checks over the generated HTML; no model call."""

    def run_checks(self, html: str, plan: BuildPlan) -> tuple[list[Issue], list[Issue]]:
        issues: list[Issue] = []
        warnings: list[Issue] = []

        if "</html>" not in html:
            issues.append(_critical("INCOMPLETE_HTML", "HTML incomplete - missing closing </html> tag"))
        if "<!doctype html>" not in html.lower():
            warnings.append(_warning("MISSING_DOCTYPE", "Missing DOCTYPE declaration"))
        if "<html" not in html:
            issues.append(_critical("MISSING_HTML_TAG", "Missing <html> opening tag"))
        if "<head>" not in html:
            issues.append(_critical("MISSING_HEAD", "Missing <head> section"))
        if "<body" not in html:
            issues.append(_critical("MISSING_BODY", "Missing <body> tag"))
        if "viewport" not in html:
            issues.append(_critical("MISSING_VIEWPORT", "Missing viewport meta tag - required for mobile"))
        if "page-theme.css" not in html:
            issues.append(_critical("MISSING_THEME", "Missing page-theme.css link"))
        if "index.html" not in html and "HOME" not in html:
            warnings.append(_warning("MISSING_HOME_LINK", "No home link found"))

        if plan.is_game:
            self._game_checks(html, issues, warnings)

        if "padding-top:" in html and "padding:" in html:
            warnings.append(
                _warning("PADDING_CONFLICT", "Both padding-top and padding are set; use the padding shorthand")
            )
        opened = html.count("<script")
        closed = html.count("</script>")
        if opened != closed:
            issues.append(
                _critical("MISMATCHED_SCRIPT_TAGS", f"Mismatched script tags - {opened} open, {closed} close")
            )
        if "```" in html:
            issues.append(_critical("MARKDOWN_ARTIFACTS", "Code contains markdown code fences"))
        if any(marker in html for marker in _INCOMPLETE_MARKERS):
            warnings.append(_warning("INCOMPLETE_CODE", "Code contains TODO/FIXME or placeholders"))
        return issues, warnings

    def _game_checks(self, html: str, issues: list[Issue], warnings: list[Issue]) -> None:
        if "mobile-controls" not in html and "touch" not in html:
            issues.append(_critical("NO_MOBILE_CONTROLS", "Game missing mobile controls"))
        if "touch-action" not in html:
            warnings.append(_warning("MISSING_TOUCH_ACTION", "Missing touch-action CSS to prevent zoom"))
        if "@media" not in html or "max-width" not in html:
            issues.append(_critical("NO_RESPONSIVE", "No responsive breakpoints for small screens"))
        if "touchstart" not in html:
            warnings.append(_warning("NO_TOUCH_EVENTS", "No touchstart event handlers found"))
        match = _CANVAS_WIDTH_RE.search(html)
        if match and int(match.group(1)) > MAX_CANVAS_WIDTH:
            warnings.append(
                _warning(
                    "CANVAS_TOO_LARGE",
                    f"Canvas width {match.group(1)}px exceeds the mobile-friendly size",
                )
            )

    def test(self, plan: BuildPlan, output: BuildOutput) -> QualityReport:
        html = output.html_content
        issues, warnings = self.run_checks(html, plan)
        passed = [check.name for check in STRUCTURAL_CHECKS if check.passes(html)]
        report = QualityReport(
            ok=not issues,
            issues=issues,
            warnings=warnings,
            score=score_report(issues, warnings, passed),
            passed_checks=passed,
        )
        if report.ok:
            logger.info("Checks passed for %s: score %d", plan.slug, report.score)
        else:
            logger.warning(
                "Checks failed for %s: %s", plan.slug, ", ".join(issue.code for issue in issues)
            )
        return report
