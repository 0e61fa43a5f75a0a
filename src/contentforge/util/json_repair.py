"""Staged repair of malformed JSON emitted by language models."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable

from contentforge.util.logging import clip, get_logger

logger = get_logger(__name__)

_CODE = "code"
_STRING = "string"
_OPEN_STRING = "open_string"
_COMMENT = "comment"

_FENCE_RE = re.compile(r"```(?:json|[a-zA-Z]*\n)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_FENCE_MARK_RE = re.compile(r"```(?:json|[a-zA-Z]*\n)?", re.IGNORECASE)
_VENDOR_TOKEN_RE = re.compile(r"<[｜|][\w▁｜|.:-]*[｜|]>")
_CALL_WRAPPER_RE = re.compile(r"^\s*[A-Za-z_][\w.]*\s*\(\s*(.*?)\s*\)\s*;?\s*$", re.DOTALL)
_TOKEN_RE = re.compile(r"\s+|[{}\[\]:,]|[^\s{}\[\]:,]+")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_UNQUOTED_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_$][\w$-]*)(\s*:)")
_LITERAL_RE = re.compile(r"\b(True|False|None|undefined)\b")
_CONTROL_RE = re.compile(r"[\x00-\x1f]")

_LITERALS = {
    "True": ("true", "py_true"),
    "False": ("false", "py_false"),
    "None": ("null", "py_none"),
    "undefined": ("null", "js_undefined"),
}
_SMART_QUOTES = str.maketrans(
    {
        "“": '"',
        "”": '"',
        "„": '"',
        "‟": '"',
        "″": '"',
        "‶": '"',
        "‘": "'",
        "’": "'",
        "‚": "'",
        "‛": "'",
        "′": "'",
        "‵": "'",
    }
)
_CLOSERS = {"{": "}", "[": "]"}
_QUOTE_PAIRS = {"\"": "\"", "'": "'", "“": "”", "‘": "’"}
_ANY_QUOTE = "".join(_QUOTE_PAIRS)


class JsonRepairError(ValueError):
    """Raised when JSON repair fails."""


@dataclass(frozen=True)
class HealResult:
    parsed: Any
    healed: bool
    repairs: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _scan_string(text: str, start: int) -> tuple[int, bool]:
    quote = _QUOTE_PAIRS.get(text[start], text[start])
    escape = False
    for index in range(start + 1, len(text)):
        char = text[index]
        if escape:
            escape = False
        elif char == "\\":
            escape = True
        elif char == quote:
            return index + 1, True
    return len(text), False


def _segments(text: str, quotes: str = '"') -> list[tuple[str, str]]:
    """Split text into code, string literal and comment segments."""
    segments: list[tuple[str, str]] = []
    start = 0
    index = 0
    length = len(text)
    while index < length:
        char = text[index]
        if char in quotes:
            end, terminated = _scan_string(text, index)
            kind = _STRING if terminated else _OPEN_STRING
        elif text.startswith("//", index):
            newline = text.find("\n", index)
            end = length if newline == -1 else newline
            kind = _COMMENT
        elif text.startswith("/*", index):
            close = text.find("*/", index + 2)
            end = length if close == -1 else close + 2
            kind = _COMMENT
        else:
            index += 1
            continue
        if index > start:
            segments.append((_CODE, text[start:index]))
        segments.append((kind, text[index:end]))
        start = index = end
    if start < length:
        segments.append((_CODE, text[start:]))
    return segments


def _map_code(text: str, func: Callable[[str], str], quotes: str = '"') -> str:
    return "".join(
        func(chunk) if kind == _CODE else chunk for kind, chunk in _segments(text, quotes)
    )


def _balanced_span(text: str) -> tuple[int | None, int | None]:
    start_index = None
    for idx, char in enumerate(text):
        if char in "{[":
            start_index = idx
            break
    if start_index is None:
        return None, None
    depth = 0
    idx = start_index
    while idx < len(text):
        char = text[idx]
        if char in _ANY_QUOTE:
            idx, _ = _scan_string(text, idx)
            continue
        if char in "{[":
            depth += 1
        elif char in "}]":
            depth -= 1
            if depth == 0:
                return start_index, idx
        idx += 1
    return start_index, None


def _strip_wrappers(text: str) -> tuple[str, list[str]]:
    repairs: list[str] = []
    if "```" in text:
        match = _FENCE_RE.search(text)
        text = match.group(1) if match else _FENCE_MARK_RE.sub("", text)
        text = text.strip()
        repairs.append("stripped_markdown")
    if _VENDOR_TOKEN_RE.search(text):
        text = _VENDOR_TOKEN_RE.sub("", text).strip()
        repairs.append("stripped_vendor_delimiters")
    wrapper = _CALL_WRAPPER_RE.match(text)
    if wrapper and wrapper.group(1).lstrip()[:1] in ("{", "["):
        text = wrapper.group(1)
        repairs.append("stripped_call_wrapper")
    start, end = _balanced_span(text)
    if start is not None:
        span = text[start : end + 1] if end is not None else text[start:]
        if span != text:
            text = span
            repairs.append("extracted_from_prose")
    return text, repairs


def _close_open_containers(text: str) -> tuple[str, list[str]]:
    repairs: list[str] = []
    stack: list[str] = []
    suffix = ""
    for kind, chunk in _segments(text, quotes=_ANY_QUOTE):
        if kind == _OPEN_STRING:
            suffix = _QUOTE_PAIRS.get(chunk[0], chunk[0])
            repairs.append("closed_string")
            continue
        if kind != _CODE:
            continue
        for char in chunk:
            if char in _CLOSERS:
                stack.append(char)
            elif char in "}]" and stack and _CLOSERS[stack[-1]] == char:
                stack.pop()
    if not stack:
        return text + suffix, repairs
    closers = "".join(_CLOSERS[opener] for opener in reversed(stack))
    if "]" in closers:
        repairs.append("closed_brackets")
    if "}" in closers:
        repairs.append("closed_braces")
    body = text + suffix if suffix else text.rstrip()
    return body + closers, repairs


def _insert_missing_commas(text: str) -> tuple[str, bool]:
    pieces: list[str] = []
    after_value = False
    inserted = False
    for kind, chunk in _segments(text, quotes=_ANY_QUOTE):
        if kind == _COMMENT:
            pieces.append(chunk)
            continue
        if kind in (_STRING, _OPEN_STRING):
            if after_value:
                pieces.append(",")
                inserted = True
            pieces.append(chunk)
            after_value = True
            continue
        for token in _TOKEN_RE.findall(chunk):
            if token.isspace():
                pass
            elif token in "{[":
                if after_value:
                    pieces.append(",")
                    inserted = True
                after_value = False
            elif token in "}]":
                after_value = True
            elif token in ":,":
                after_value = False
            else:
                if after_value:
                    pieces.append(",")
                    inserted = True
                after_value = True
            pieces.append(token)
    return "".join(pieces), inserted


def _repair_structure(text: str) -> tuple[str, list[str]]:
    text, repairs = _close_open_containers(text)
    cleaned = _map_code(text, lambda chunk: _TRAILING_COMMA_RE.sub(r"\1", chunk), _ANY_QUOTE)
    if cleaned != text:
        repairs.append("removed_trailing_comma")
        text = cleaned
    text, inserted = _insert_missing_commas(text)
    if inserted:
        repairs.append("added_missing_comma")
    return text, repairs


def _single_to_double(literal: str) -> str:
    inner = literal[1:-1].replace("\\'", "'")
    inner = re.sub(r'(?<!\\)"', r'\\"', inner)
    return f'"{inner}"'


def _straighten(literal: str) -> str:
    inner = re.sub(r'(?<!\\)"', r'\\"', literal[1:-1])
    return f'"{inner}"'


def _normalize_quotes(text: str) -> tuple[str, list[str]]:
    repairs: list[str] = []
    pieces: list[str] = []
    for kind, chunk in _segments(text, quotes=_ANY_QUOTE):
        if kind == _STRING and chunk[0] in "\u201c\u2018":
            pieces.append(_straighten(chunk))
        elif kind == _CODE:
            pieces.append(chunk.translate(_SMART_QUOTES))
        else:
            pieces.append(chunk)
    translated = "".join(pieces)
    if translated != text:
        repairs.append("normalized_smart_quotes")
        text = translated
    segments = _segments(text, quotes=_ANY_QUOTE)
    if any(kind == _STRING and chunk.startswith("'") for kind, chunk in segments):
        text = "".join(
            _single_to_double(chunk) if kind == _STRING and chunk.startswith("'") else chunk
            for kind, chunk in segments
        )
        repairs.append("converted_single_quotes")
    quoted = _map_code(text, lambda chunk: _UNQUOTED_KEY_RE.sub(r'\1"\2"\3', chunk))
    if quoted != text:
        repairs.append("quoted_unquoted_keys")
        text = quoted
    return text, repairs


def _cleanup_literals(text: str) -> tuple[str, list[str]]:
    repairs: list[str] = []

    def replace_literal(match: re.Match[str]) -> str:
        canonical, repair = _LITERALS[match.group(1)]
        if repair not in repairs:
            repairs.append(repair)
        return canonical

    pieces: list[str] = []
    for kind, chunk in _segments(text):
        if kind == _CODE:
            pieces.append(_LITERAL_RE.sub(replace_literal, chunk))
        elif kind == _COMMENT:
            if "removed_comments" not in repairs:
                repairs.append("removed_comments")
        else:
            escaped = _CONTROL_RE.sub(lambda m: json.dumps(m.group())[1:-1], chunk)
            if escaped != chunk and "escaped_control_characters" not in repairs:
                repairs.append("escaped_control_characters")
            pieces.append(escaped)
    text = "".join(pieces)
    if "removed_comments" in repairs:
        text = _map_code(text, lambda chunk: _TRAILING_COMMA_RE.sub(r"\1", chunk))
    return text.strip(), repairs


_STAGES: tuple[Callable[[str], tuple[str, list[str]]], ...] = (
    _strip_wrappers,
    _repair_structure,
    _normalize_quotes,
    _cleanup_literals,
)


def heal(raw: Any) -> HealResult:
    """Parse model-emitted JSON, repairing it in ordered stages when needed.

    Never raises. Valid input takes the fast path and reports ``healed=False``;
    irrecoverable input returns ``parsed=None`` with an error message and the
    repairs that were attempted.
    """
    if raw is None:
        return HealResult(parsed={}, healed=False)
    if isinstance(raw, (dict, list)):
        return HealResult(parsed=raw, healed=False)
    text = str(raw)
    if not text.strip():
        return HealResult(parsed={}, healed=False)
    try:
        return HealResult(parsed=json.loads(text), healed=False)
    except json.JSONDecodeError:
        pass

    candidate = text.strip()
    repairs: list[str] = []
    for stage in _STAGES:
        candidate, applied = stage(candidate)
        repairs.extend(applied)
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as exc:
        logger.debug("Healing failed repairs=%s text=%s", repairs, clip(text))
        return HealResult(
            parsed=None,
            healed=False,
            repairs=repairs,
            error=f"Could not repair JSON: {exc.msg} at position {exc.pos}",
        )
    logger.debug("Healed JSON repairs=%s", repairs)
    return HealResult(parsed=parsed, healed=True, repairs=repairs)


def repair_json(text: str) -> Any:
    """Parse JSON with best-effort repairs."""
    result = heal(text)
    if result.parsed is None:
        raise JsonRepairError(result.error or "Failed to repair JSON")
    return result.parsed
