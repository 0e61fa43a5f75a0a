"""Mock chat model for offline testing."""

from __future__ import annotations

from contentforge.models.base import BaseChatModel, ModelRequest, ModelResponse


class MockChatModel(BaseChatModel):
    """Deterministic mock model used when no API key is available.

    Scripted entries are returned in order; exceptions in the script are raised.
    """

    def __init__(self, scripted: list[ModelResponse | Exception] | None = None) -> None:
        self._scripted = list(scripted or [])
        self.requests: list[ModelRequest] = []

    def chat(self, request: ModelRequest) -> ModelResponse:
        self.requests.append(request)
        if self._scripted:
            item = self._scripted.pop(0)
            if isinstance(item, Exception):
                raise item
            if item.model is None:
                return item.model_copy(update={"model": request.model})
            return item
        last = request.messages[-1].get("content") if request.messages else ""
        return ModelResponse(
            content=f"Mock response to: {last}", finish_reason="stop", model=request.model
        )
