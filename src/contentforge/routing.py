"""Rules-based intent routing for inbound requests."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Sequence

from contentforge.util.logging import clip, get_logger

logger = get_logger(__name__)


class Intent(str, Enum):
    CHAT = "chat"
    EDIT = "edit"
    CREATE = "create"
    COMMIT = "commit"
    READ = "read"
    SEARCH = "search"
    CONFIG = "config"


@dataclass(frozen=True)
class RouterConfidence:
    """Fixed confidence reported by each routing branch."""

    structural: float = 0.85
    edit: float = 0.9
    pronoun_edit: float = 0.8
    create: float = 0.8
    create_vague: float = 0.3
    commit: float = 0.85
    model_switch: float = 0.9
    read_path: float = 0.8
    search: float = 0.7
    list: float = 0.6
    web_search: float = 0.7
    default: float = 0.5

    @classmethod
    def from_overrides(cls, overrides: Mapping[str, float] | None) -> "RouterConfidence":
        if not overrides:
            return cls()
        known = {item.name for item in fields(cls)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValueError(f"Unknown router confidence keys: {', '.join(unknown)}")
        return replace(cls(), **{key: float(value) for key, value in overrides.items()})


@dataclass(frozen=True)
class RoutingPlan:
    intent: Intent
    action_sequence: list[str] = field(default_factory=list)
    parameter_hints: dict[str, dict[str, Any]] = field(default_factory=dict)
    confidence: float = 0.5
    reasoning: str = ""
    clarify_first: bool = False
    clarify_question: str | None = None
    expected_iterations: int = 1
    rule: str = "default"


@dataclass(frozen=True)
class RouteContext:
    """Caller-supplied context; recent files are most-recent-first."""

    recent_files: tuple[str, ...] = ()


@dataclass(frozen=True)
class RouteRequest:
    message: str
    path: str | None
    recent_files: tuple[str, ...]
    confidence: RouterConfidence
    content_dir: str

    @property
    def word_count(self) -> int:
        return len(self.message.split())


@dataclass(frozen=True)
class RouteRule:
    name: str
    matches: Callable[[RouteRequest], bool]
    plan: Callable[[RouteRequest], RoutingPlan]


_PATH_EXTENSIONS = "html|js|css|json|md"
_URL_PATH_RE = re.compile(r"https?://[^\s/]+/([^\s?#]+)", re.IGNORECASE)
_TRAILING_PUNCT = ".,;:!?)]}\"'"

_STRUCTURAL_RE = re.compile(
    r"\b(?:follow|match|mirror)\b"
    r"|\bsame\s+(?:design|structure|format|layout|style)\b"
    r"|\bsimilar\s+to\b"
    r"|\blike\s+(?:src/)?[\w][\w-]*\.html\b",
    re.IGNORECASE,
)
_REFERENCE_RE = re.compile(r"\b(?:like|as|to|of)\s+(?:src/)?([\w][\w-]*\.html)\b", re.IGNORECASE)
_EDIT_VERB_RE = re.compile(
    r"\b(?:edit|change|replace|update|fix|modify|tweak|adjust|correct)\b", re.IGNORECASE
)
_PRONOUN_RE = re.compile(
    r"\b(?:it|its|that|this|them|the\s+(?:game|page|site|file|app|thing))\b", re.IGNORECASE
)
_FOLLOW_UP_VOCABULARY = (
    # repair
    r"fix\w*|broken|break\w*|bug\w*|debug\w*|patch\w*|repair\w*|error\w*|glitch\w*"
    r"|crash\w*|wrong|not\s+working",
    # enhancement
    r"add|give|apply|styl\w*|theme\w*|turn|change|update|improve|polish|tweak\w*|refine"
    r"|simplify|clean|optimi[sz]e|enhance|make|redesign|restyle|darker|lighter|brighter"
    r"|colou?r\w*",
    # resize
    r"bigger|smaller|larger|resize|expand|shrink|scale|wider|narrower|taller|shorter",
    # removal
    r"remove|delete|hide|trim|drop|strip|get\s+rid\s+of",
    # reposition
    r"move|center|centre|align|swap|reorder|shift|position|rearrange",
)
_FOLLOW_UP_RE = re.compile(r"\b(?:" + "|".join(_FOLLOW_UP_VOCABULARY) + r")\b", re.IGNORECASE)
_CREATE_VERB_RE = re.compile(r"\b(?:create|build|make|generate|produce|design)\b", re.IGNORECASE)
_NAMED_RE = re.compile(r"\b(?:called|named|titled)\s+[\"']?([\w][\w-]*)", re.IGNORECASE)
_COMMIT_RE = re.compile(r"\b(?:commit|push|save|deploy|publish)\b", re.IGNORECASE)
_MODEL_SWITCH_RE = re.compile(
    r"\b(?:switch|change|set)\s+(?:the\s+)?(?:ai\s+)?model\b"
    r"|\bswitch\s+to\s+[\w./:-]+"
    r"|\buse\s+(?:the\s+)?[\w./:-]+\s+model\b",
    re.IGNORECASE,
)
_MODEL_NAME_RE = re.compile(r"\b(?:to|use)\s+(?:the\s+)?([\w./:-]+)", re.IGNORECASE)
_LOOKUP_RE = re.compile(
    r"\b(?:list|show|find|search|read|grep|open|display|view|look\s+(?:for|at))\b",
    re.IGNORECASE,
)
_SEARCH_RE = re.compile(r"\b(?:search|find|grep|look\s+for)\b", re.IGNORECASE)
_QUOTED_RE = re.compile(r"[\"']([^\"']+)[\"']")
_SEARCH_TERM_RE = re.compile(r"\b(?:for|find|search)\s+([\w-]+)", re.IGNORECASE)
_TIME_SENSITIVE_RE = re.compile(
    r"\b(?:latest|current|recent|news|today|this\s+week|right\s+now|up\s+to\s+date)\b",
    re.IGNORECASE,
)
_CONTENT_TYPES = (
    ("arcade-game", re.compile(r"\b(?:game|arcade|snake|tetris|pong|breakout|platformer|puzzle)\b", re.I)),
    ("letter", re.compile(r"\b(?:letter|note|card|invitation)\b", re.I)),
    ("recipe", re.compile(r"\b(?:recipe|cook\w*|bake|dish)\b", re.I)),
    ("infographic", re.compile(r"\b(?:infographic|chart|timeline|diagram)\b", re.I)),
    ("story", re.compile(r"\b(?:story|poem|tale|comic)\b", re.I)),
    ("utility", re.compile(r"\b(?:tool|calculator|tracker|timer|converter|checklist)\b", re.I)),
)

_FILLER_WORDS = frozenset(
    "a an the me us my our new some please for can could you i want to just quick".split()
)
_GENERIC_NOUNS = frozenset(("game", "page", "app", "site", "thing", "something", "one"))

CLARIFY_CREATE_QUESTION = (
    "Happy to build that. What should it be called, and what should it include "
    "(for example a game, a story page, a recipe or a small tool)?"
)


def _clean_path(path: str) -> str:
    return path.rstrip(_TRAILING_PUNCT)


def extract_path(
    message: str,
    content_dir: str = "src",
    bare_extensions: Sequence[str] = ("html",),
) -> str | None:
    """Find the file a message refers to.

    An explicit ``<content_dir>/...`` path wins over a path inside a full URL,
    which wins over a bare filename. Bare filenames are only recognized for
    ``bare_extensions`` and are prefixed with the content directory.
    """
    prefixed = re.search(
        rf"(?<![\w/.-]){re.escape(content_dir)}/[\w./-]+\.(?:{_PATH_EXTENSIONS})\b",
        message,
        re.IGNORECASE,
    )
    if prefixed:
        return _clean_path(prefixed.group(0))
    url = _URL_PATH_RE.search(message)
    if url:
        return _clean_path(url.group(1))
    if bare_extensions:
        pattern = "|".join(re.escape(ext) for ext in bare_extensions)
        bare = re.search(rf"\b([\w][\w-]*\.(?:{pattern}))\b", message, re.IGNORECASE)
        if bare:
            return f"{content_dir}/{bare.group(1)}"
    return None


def infer_content_type(message: str) -> str:
    for content_type, pattern in _CONTENT_TYPES:
        if pattern.search(message):
            return content_type
    return "auto"


def has_typed_target(message: str) -> bool:
    """True when a creation request names what kind of thing to make.

    "build me a snake game" and "generate a new story" qualify; "make a game"
    is only the bare generic noun and does not.
    """
    if infer_content_type(message) == "auto":
        return False
    words = [word.lower() for word in re.findall(r"[\w'-]+", message)]
    descriptors = [
        word for word in words if word not in _FILLER_WORDS and not _CREATE_VERB_RE.fullmatch(word)
    ]
    if len(descriptors) >= 2:
        return True
    return bool(descriptors) and descriptors[0] not in _GENERIC_NOUNS


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def _is_structural(request: RouteRequest) -> bool:
    return request.path is not None and bool(_STRUCTURAL_RE.search(request.message))


def _structural_plan(request: RouteRequest) -> RoutingPlan:
    target = request.path
    reference = None
    for match in _REFERENCE_RE.finditer(request.message):
        candidate = f"{request.content_dir}/{match.group(1)}"
        if candidate != target:
            reference = candidate
            break
    reads = [target, reference] if reference else [target]
    sequence = ["file_exists", "read_file"]
    if reference:
        sequence.append("read_file")
    sequence.append("write_file")
    reasoning = f"Structural transformation: {target}"
    if reference:
        reasoning += f" to match {reference}"
    return RoutingPlan(
        intent=Intent.EDIT,
        action_sequence=sequence,
        parameter_hints={
            "file_exists": {"path": target},
            "read_file": {"paths": reads},
            "write_file": {"path": target, "mode": "full_overwrite"},
        },
        confidence=request.confidence.structural,
        reasoning=reasoning + " (rewrite the whole file, do not patch)",
        expected_iterations=len(sequence),
        rule="structural",
    )


def _is_explicit_edit(request: RouteRequest) -> bool:
    return request.path is not None and bool(_EDIT_VERB_RE.search(request.message))


def _explicit_edit_plan(request: RouteRequest) -> RoutingPlan:
    path = request.path
    return RoutingPlan(
        intent=Intent.EDIT,
        action_sequence=["file_exists", "read_file", "edit_file"],
        parameter_hints={
            "file_exists": {"path": path},
            "read_file": {"path": path},
            "edit_file": {"path": path},
        },
        confidence=request.confidence.edit,
        reasoning=f"Edit request with explicit path: {path}",
        expected_iterations=3,
        rule="explicit_edit",
    )


def _is_follow_up(request: RouteRequest) -> bool:
    return (
        bool(request.recent_files)
        and bool(_PRONOUN_RE.search(request.message))
        and bool(_FOLLOW_UP_RE.search(request.message))
    )


def _follow_up_plan(request: RouteRequest) -> RoutingPlan:
    path = request.recent_files[0]
    return RoutingPlan(
        intent=Intent.EDIT,
        action_sequence=["read_file", "edit_file"],
        parameter_hints={"read_file": {"path": path}, "edit_file": {"path": path}},
        confidence=request.confidence.pronoun_edit,
        reasoning=f"Follow-up edit resolved to most recent file: {path}",
        expected_iterations=2,
        rule="follow_up_edit",
    )


def _is_create(request: RouteRequest) -> bool:
    return bool(_CREATE_VERB_RE.search(request.message))


def _create_plan(request: RouteRequest) -> RoutingPlan:
    named = _NAMED_RE.search(request.message)
    specific = (
        named is not None
        or request.path is not None
        or request.word_count > 8
        or has_typed_target(request.message)
    )
    if not specific:
        return RoutingPlan(
            intent=Intent.CHAT,
            confidence=request.confidence.create_vague,
            reasoning="Creation request without a name, type or detail",
            clarify_first=True,
            clarify_question=CLARIFY_CREATE_QUESTION,
            rule="create_vague",
        )
    hints: dict[str, Any] = {"content_type": infer_content_type(request.message)}
    if request.path is not None:
        hints["path"] = request.path
    elif named:
        hints["path"] = f"{request.content_dir}/{slugify(named.group(1))}.html"
    if named:
        hints["name"] = named.group(1)
    return RoutingPlan(
        intent=Intent.CREATE,
        action_sequence=["list_files", "write_file"],
        parameter_hints={"list_files": {"path": request.content_dir}, "write_file": hints},
        confidence=request.confidence.create,
        reasoning="Creation request with enough detail to build",
        expected_iterations=2,
        rule="create",
    )


def _is_commit(request: RouteRequest) -> bool:
    return bool(_COMMIT_RE.search(request.message))


def _commit_plan(request: RouteRequest) -> RoutingPlan:
    return RoutingPlan(
        intent=Intent.COMMIT,
        action_sequence=["get_repo_status", "commit_changes"],
        confidence=request.confidence.commit,
        reasoning="Commit or publish request",
        expected_iterations=2,
        rule="commit",
    )


def _is_model_switch(request: RouteRequest) -> bool:
    return bool(_MODEL_SWITCH_RE.search(request.message))


def _model_switch_plan(request: RouteRequest) -> RoutingPlan:
    hints: dict[str, dict[str, Any]] = {}
    name = _MODEL_NAME_RE.search(request.message)
    if name and name.group(1).lower() != "model":
        hints["set_model"] = {"model": _clean_path(name.group(1))}
    return RoutingPlan(
        intent=Intent.CONFIG,
        action_sequence=["set_model"],
        parameter_hints=hints,
        confidence=request.confidence.model_switch,
        reasoning="Model switch request",
        rule="model_switch",
    )


def _is_lookup(request: RouteRequest) -> bool:
    return bool(_LOOKUP_RE.search(request.message))


def _lookup_plan(request: RouteRequest) -> RoutingPlan:
    if request.path is not None:
        return RoutingPlan(
            intent=Intent.READ,
            action_sequence=["file_exists", "read_file"],
            parameter_hints={
                "file_exists": {"path": request.path},
                "read_file": {"path": request.path},
            },
            confidence=request.confidence.read_path,
            reasoning=f"Read request for {request.path}",
            expected_iterations=2,
            rule="read_path",
        )
    if _SEARCH_RE.search(request.message):
        quoted = _QUOTED_RE.search(request.message)
        term = quoted or _SEARCH_TERM_RE.search(request.message)
        hints = {"search_files": {"pattern": term.group(1)}} if term else {}
        return RoutingPlan(
            intent=Intent.SEARCH,
            action_sequence=["search_files"],
            parameter_hints=hints,
            confidence=request.confidence.search,
            reasoning="Search request without a specific file",
            rule="search",
        )
    return RoutingPlan(
        intent=Intent.READ,
        action_sequence=["list_files"],
        parameter_hints={"list_files": {"path": request.content_dir}},
        confidence=request.confidence.list,
        reasoning="Listing request",
        rule="list",
    )


def _is_time_sensitive(request: RouteRequest) -> bool:
    return bool(_TIME_SENSITIVE_RE.search(request.message))


def _web_search_plan(request: RouteRequest) -> RoutingPlan:
    return RoutingPlan(
        intent=Intent.SEARCH,
        action_sequence=["web_search"],
        parameter_hints={"web_search": {"query": request.message.strip()}},
        confidence=request.confidence.web_search,
        reasoning="Time-sensitive question needs fresh information",
        rule="web_search",
    )


def _default_plan(request: RouteRequest) -> RoutingPlan:
    return RoutingPlan(
        intent=Intent.CHAT,
        confidence=request.confidence.default,
        reasoning="No routing rule matched",
        rule="default",
    )


STRUCTURAL_RULE = RouteRule("structural", _is_structural, _structural_plan)
EXPLICIT_EDIT_RULE = RouteRule("explicit_edit", _is_explicit_edit, _explicit_edit_plan)
FOLLOW_UP_RULE = RouteRule("follow_up_edit", _is_follow_up, _follow_up_plan)
CREATE_RULE = RouteRule("create", _is_create, _create_plan)
COMMIT_RULE = RouteRule("commit", _is_commit, _commit_plan)
MODEL_SWITCH_RULE = RouteRule("model_switch", _is_model_switch, _model_switch_plan)
LOOKUP_RULE = RouteRule("lookup", _is_lookup, _lookup_plan)
WEB_SEARCH_RULE = RouteRule("web_search", _is_time_sensitive, _web_search_plan)
DEFAULT_RULE = RouteRule("default", lambda request: True, _default_plan)

DEFAULT_RULES: tuple[RouteRule, ...] = (
    STRUCTURAL_RULE,
    EXPLICIT_EDIT_RULE,
    FOLLOW_UP_RULE,
    CREATE_RULE,
    COMMIT_RULE,
    MODEL_SWITCH_RULE,
    LOOKUP_RULE,
    WEB_SEARCH_RULE,
    DEFAULT_RULE,
)


class IntentRouter:
    """Evaluates routing rules top to bottom; the first match wins."""

    def __init__(
        self,
        rules: Sequence[RouteRule] = DEFAULT_RULES,
        confidence: RouterConfidence | None = None,
        content_dir: str = "src",
        bare_extensions: Sequence[str] = ("html",),
    ) -> None:
        self.rules = tuple(rules)
        self.confidence = confidence or RouterConfidence()
        self.content_dir = content_dir.strip("/")
        self.bare_extensions = tuple(bare_extensions)

    def request(self, message: str, context: RouteContext | None = None) -> RouteRequest:
        recent = context.recent_files if context else ()
        return RouteRequest(
            message=message,
            path=extract_path(message, self.content_dir, self.bare_extensions),
            recent_files=tuple(recent),
            confidence=self.confidence,
            content_dir=self.content_dir,
        )

    def classify(self, message: str, context: RouteContext | None = None) -> RoutingPlan:
        request = self.request(message, context)
        for rule in self.rules:
            if rule.matches(request):
                plan = rule.plan(request)
                break
        else:
            plan = _default_plan(request)
        logger.info(
            "Routed %r -> %s via %s [%s] confidence=%.2f",
            clip(message, 80),
            plan.intent.value,
            plan.rule,
            " -> ".join(plan.action_sequence),
            plan.confidence,
        )
        return plan


_DEFAULT_ROUTER = IntentRouter()


def classify(message: str, recent_files: Iterable[str] = ()) -> RoutingPlan:
    return _DEFAULT_ROUTER.classify(message, RouteContext(recent_files=tuple(recent_files)))


def routing_guidance(plan: RoutingPlan) -> str:
    """Render a plan as advisory guidance for the agent loop."""
    if not plan.action_sequence:
        return ""
    lines = [
        "## ROUTING GUIDANCE",
        f"Intent: {plan.intent.value}",
        f"Suggested tool sequence: {' -> '.join(plan.action_sequence)}",
    ]
    if plan.parameter_hints:
        lines.append("")
        lines.append("Parameter hints:")
        for action, hints in plan.parameter_hints.items():
            lines.append(f"- {action}: {json.dumps(hints, sort_keys=True)}")
    if plan.reasoning:
        lines.append("")
        lines.append(f"Reasoning: {plan.reasoning}")
    lines.append("")
    lines.append(
        "This is a suggested starting point. Deviate when the files say otherwise; "
        "when unsure, explore with list_files or search_files first."
    )
    return "\n".join(lines)
