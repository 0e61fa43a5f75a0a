"""OpenAI-compatible chat model client."""

from __future__ import annotations

import json
import re
import time
from typing import Any
from urllib.parse import urlparse, urlunparse

import httpx

from contentforge.failures import (
    ClientInvalidError,
    ModelInvocationError,
    QuotaExceededError,
    TransientServerError,
)
from contentforge.models.base import BaseChatModel, ModelRequest, ModelResponse, ToolCall, Usage
from contentforge.util.logging import clip, get_logger, redact

logger = get_logger(__name__)

_AFFORDABLE_RE = re.compile(r"can only afford (\d+)", re.IGNORECASE)


def _affordable_tokens(body: str) -> int | None:
    match = _AFFORDABLE_RE.search(body)
    return int(match.group(1)) if match else None


class OpenAICompatChatModel(BaseChatModel):
    """HTTP client for OpenAI-compatible chat/completions."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout_seconds: int = 60,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        max_response_bytes: int = 2_000_000,
        extra_headers: dict[str, str] | None = None,
        disable_tool_choice: bool = False,
        force_chatcompletions_path: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        normalized = base_url.strip()
        if not normalized.startswith(("http://", "https://")):
            normalized = f"http://{normalized}"
        self.base_url = normalized.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.max_response_bytes = max_response_bytes
        self.extra_headers = extra_headers or {}
        self.disable_tool_choice = disable_tool_choice
        self.force_chatcompletions_path = force_chatcompletions_path
        self.transport = transport

    def _request_payload(self, request: ModelRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": request.model,
            "messages": request.messages,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }
        if request.tools:
            payload["tools"] = request.tools
            if not self.disable_tool_choice:
                payload["tool_choice"] = "auto"
        if request.private:
            payload["provider"] = {"data_collection": "deny"}
        return payload

    def _build_url(self) -> str:
        parsed = urlparse(self.base_url)
        if self.force_chatcompletions_path:
            forced_path = self.force_chatcompletions_path
            if not forced_path.startswith("/"):
                forced_path = f"/{forced_path}"
            return urlunparse(parsed._replace(path=forced_path, params="", query="", fragment=""))
        path = parsed.path or ""
        if path in {"", "/"}:
            base_path = "/v1"
        else:
            base_path = path.rstrip("/")
            segments = [segment for segment in base_path.split("/") if segment]
            if "v1" not in segments:
                base_path = f"{base_path}/v1"
        if base_path.endswith("/chat/completions"):
            final_path = base_path
        else:
            final_path = f"{base_path}/chat/completions"
        return urlunparse(parsed._replace(path=final_path, params="", query="", fragment=""))

    def _classify_status(self, response: httpx.Response, request: ModelRequest) -> None:
        status = response.status_code
        if status < 400:
            return
        body = redact(response.text[:500], [self.api_key])
        if status == 402:
            raise QuotaExceededError(
                f"Insufficient credits: {body}",
                model=request.model,
                status_code=status,
                affordable_tokens=_affordable_tokens(body),
                requested_tokens=request.max_tokens,
            )
        if status == 429 or status >= 500:
            raise TransientServerError(
                f"Retryable error {status}: {body}", model=request.model, status_code=status
            )
        raise ClientInvalidError(
            f"Request rejected {status}: {body}", model=request.model, status_code=status
        )

    def _parse_response(self, response: httpx.Response, request: ModelRequest) -> ModelResponse:
        if len(response.content) > self.max_response_bytes:
            raise ClientInvalidError("Response too large", model=request.model)
        try:
            data = response.json()
        except json.JSONDecodeError as exc:
            raise TransientServerError("Malformed JSON response", model=request.model) from exc
        if not isinstance(data, dict):
            raise TransientServerError("Malformed JSON response", model=request.model)
        if data.get("error"):
            raise TransientServerError(
                f"Provider error: {clip(str(data['error']))}", model=request.model
            )
        choices = data.get("choices") or [{}]
        choice = choices[0]
        message = choice.get("message") or {}
        content = message.get("content")
        tool_calls = []
        for raw_call in message.get("tool_calls") or []:
            function = raw_call.get("function") or {}
            if not function.get("name"):
                continue
            arguments = function.get("arguments")
            tool_calls.append(
                ToolCall(
                    id=raw_call.get("id"),
                    name=function["name"],
                    arguments=arguments if arguments is not None else "{}",
                )
            )
        usage = data.get("usage")
        return ModelResponse(
            content=content if isinstance(content, str) else "",
            tool_calls=tool_calls,
            finish_reason=choice.get("finish_reason"),
            usage=Usage.model_validate(usage) if isinstance(usage, dict) else None,
            model=data.get("model") or request.model,
        )

    def chat(self, request: ModelRequest) -> ModelResponse:
        url = self._build_url()
        headers = {"Authorization": f"Bearer {self.api_key}", **self.extra_headers}
        payload = self._request_payload(request)
        timeout = httpx.Timeout(self.timeout_seconds)

        last_error: ModelInvocationError | None = None
        for attempt in range(self.max_retries + 1):
            try:
                with httpx.Client(timeout=timeout, transport=self.transport) as client:
                    response = client.post(url, headers=headers, json=payload)
                self._classify_status(response, request)
                return self._parse_response(response, request)
            except httpx.HTTPError as exc:
                last_error = TransientServerError(
                    f"Transport error: {exc}", model=request.model
                )
            except TransientServerError as exc:
                last_error = exc
            if attempt == self.max_retries:
                break
            delay = self.backoff_seconds * (2**attempt)
            logger.warning(
                "Model call to %s failed (%s); retry %d/%d in %.1fs",
                request.model,
                last_error,
                attempt + 1,
                self.max_retries,
                delay,
            )
            time.sleep(delay)
        raise TransientServerError(
            f"OpenAI-compatible request failed after {self.max_retries + 1} attempts: {last_error}",
            model=request.model,
            status_code=last_error.status_code if last_error else None,
        )
