from __future__ import annotations

import pytest

from contentforge.pipeline.models import BuildOutput, BuildPlan, Issue
from contentforge.pipeline.tester import QualityTester, score_report

GOOD_GAME = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <link rel="stylesheet" href="../page-theme.css">
    <style>
        body { touch-action: manipulation; }
        @media (max-width: 600px) { canvas { max-width: 95vw; height: auto; } }
    </style>
</head>
<body>
    <a href="../index.html" class="home-link">HOME</a>
    <main aria-label="game board">
        <canvas id="board" width="360" height="360"></canvas>
        <div class="mobile-controls"><button>Up</button></div>
    </main>
    <script>
        document.addEventListener("touchstart", () => {});
    </script>
</body>
</html>
"""


def _plan(content_type: str = "arcade-game") -> BuildPlan:
    return BuildPlan(slug="snake", title="Snake", content_type=content_type, files=["src/snake.html"])


def _test(html: str, content_type: str = "arcade-game"):
    return QualityTester().test(_plan(content_type), BuildOutput(files=["src/snake.html"], html_content=html))


def _codes(items: list[Issue]) -> list[str]:
    return [item.code for item in items]


def test_complete_game_page_passes():
    report = _test(GOOD_GAME)
    assert report.ok
    assert report.issues == []
    assert report.warnings == []
    assert report.score == 100
    assert report.passed_checks == ["semantic_main", "aria_labels", "responsive_breakpoints"]


def test_broken_page_reports_critical_issues_and_warnings():
    report = _test("<html><head></head><body>```js\nlet x = 1;\n```</body>", content_type="letter")
    assert not report.ok
    assert _codes(report.issues) == [
        "INCOMPLETE_HTML",
        "MISSING_VIEWPORT",
        "MISSING_THEME",
        "MARKDOWN_ARTIFACTS",
    ]
    assert _codes(report.warnings) == ["MISSING_DOCTYPE", "MISSING_HOME_LINK"]
    assert report.score == 10


def test_game_checks_only_apply_to_games():
    html = (
        GOOD_GAME.replace('<div class="mobile-controls"><button>Up</button></div>', "")
        .replace("touch-action: manipulation;", "")
        .replace('document.addEventListener("touchstart", () => {});', "")
        .replace("@media (max-width: 600px) { canvas { max-width: 95vw; height: auto; } }", "")
    )
    game = _test(html)
    assert _codes(game.issues) == ["NO_MOBILE_CONTROLS", "NO_RESPONSIVE"]
    assert _codes(game.warnings) == ["MISSING_TOUCH_ACTION", "NO_TOUCH_EVENTS"]
    letter = _test(html, content_type="letter")
    assert letter.ok
    assert letter.warnings == []


def test_warnings_never_block_success():
    html = GOOD_GAME.replace('width="360"', 'width="800"').replace(
        "body { touch-action", "body { padding-top: 80px; padding: 10px; touch-action"
    )
    report = _test(html + "<!-- // TODO polish -->")
    assert report.ok
    assert _codes(report.warnings) == ["CANVAS_TOO_LARGE", "PADDING_CONFLICT", "INCOMPLETE_CODE"]


def test_mismatched_script_tags():
    report = _test(GOOD_GAME.replace("</script>", ""))
    assert "MISMATCHED_SCRIPT_TAGS" in _codes(report.issues)


@pytest.mark.parametrize(
    ("critical", "warnings", "checks", "expected"),
    [
        (0, 0, 0, 100),
        (1, 0, 0, 80),
        (1, 2, 0, 70),
        (1, 2, 2, 80),
        (6, 0, 0, 0),
        (0, 0, 4, 100),
    ],
)
def test_score_schedule(critical, warnings, checks, expected):
    issues = [Issue(code=f"C{index}", message="c") for index in range(critical)]
    warns = [Issue(code=f"W{index}", message="w", severity="warning") for index in range(warnings)]
    assert score_report(issues, warns, [f"check{index}" for index in range(checks)]) == expected
