"""Context trimming utilities for message history."""

from __future__ import annotations

from typing import Any

_TURN_ROLES = {"user", "assistant", "tool"}
_TRUNCATED_MARKER = "[TRUNCATED]"
_ERROR_MARKERS = ("Traceback", "Error:", "Exception")


def _message_length(message: dict[str, Any]) -> int:
    content = message.get("content")
    if content is None:
        return 0
    return len(str(content))


def _truncate_message_content(message: dict[str, Any], max_chars: int) -> dict[str, Any]:
    content = message.get("content")
    if not isinstance(content, str) or len(content) <= max_chars:
        return message
    keep_len = max(0, max_chars - len(_TRUNCATED_MARKER))
    if any(marker in content for marker in _ERROR_MARKERS):
        message["content"] = f"{_TRUNCATED_MARKER}{content[len(content) - keep_len:]}"
    else:
        message["content"] = f"{content[:keep_len]}{_TRUNCATED_MARKER}"
    return message


def trim_messages(
    messages: list[dict[str, Any]],
    max_chars: int,
    max_turns: int,
    max_single_message_chars: int = 4000,
) -> list[dict[str, Any]]:
    """Drop the oldest turns until prior history fits the budgets.

    Tool results are never left without the assistant message that requested
    them; system messages are kept.
    """
    if not messages:
        return []
    max_chars = max(1, max_chars)
    max_turns = max(1, max_turns)
    trimmed = [
        _truncate_message_content(dict(message), max(1, max_single_message_chars))
        for message in messages
    ]

    def over_budget(items: list[dict[str, Any]]) -> bool:
        total_chars = sum(_message_length(item) for item in items)
        total_turns = sum(1 for item in items if item.get("role") in _TURN_ROLES)
        return total_chars > max_chars or total_turns > max_turns

    while over_budget(trimmed):
        turn_indices = [idx for idx, item in enumerate(trimmed) if item.get("role") in _TURN_ROLES]
        if len(turn_indices) <= 1:
            break
        trimmed.pop(turn_indices[0])
        while True:
            first_turn = next(
                (idx for idx, item in enumerate(trimmed) if item.get("role") in _TURN_ROLES), None
            )
            if first_turn is None or trimmed[first_turn].get("role") != "tool":
                break
            trimmed.pop(first_turn)
    return trimmed
