"""Model fallback and quota renegotiation on top of a chat model."""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Sequence

from contentforge.failures import QuotaExceededError, TransientServerError
from contentforge.models.base import BaseChatModel, ModelRequest, ModelResponse
from contentforge.util.logging import get_logger

logger = get_logger(__name__)


class FailureCounterStore:
    """Thread-safe consecutive failure counts per model id.

    Bounded: the least recently touched model is evicted once ``max_entries``
    is exceeded.
    """

    def __init__(self, max_entries: int = 64) -> None:
        self.max_entries = max(1, max_entries)
        self._counts: OrderedDict[str, int] = OrderedDict()
        self._lock = threading.Lock()

    def increment(self, model: str) -> int:
        with self._lock:
            count = self._counts.pop(model, 0) + 1
            self._counts[model] = count
            while len(self._counts) > self.max_entries:
                self._counts.popitem(last=False)
            return count

    def reset(self, model: str) -> None:
        with self._lock:
            if model in self._counts:
                self._counts[model] = 0
                self._counts.move_to_end(model)

    def get(self, model: str) -> int:
        with self._lock:
            return self._counts.get(model, 0)

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counts)

    def __len__(self) -> int:
        with self._lock:
            return len(self._counts)


class ResilientInvoker:
    """Invokes a chat model with fallback switching and one quota renegotiation.

    A transient failure increments the failing model's counter. Once the counter
    reaches ``failure_threshold`` the next attempt goes to the first fallback model
    not yet tried in this invocation. A quota error naming an affordable token
    count is retried exactly once with a reduced output budget.
    """

    def __init__(
        self,
        model: BaseChatModel,
        counters: FailureCounterStore,
        fallback_models: Sequence[str] = (),
        failure_threshold: int = 2,
        max_attempts: int = 4,
        quota_reduction_ratio: float = 0.8,
        min_output_tokens: int = 500,
    ) -> None:
        self.model = model
        self.counters = counters
        self.fallback_models = list(fallback_models)
        self.failure_threshold = max(1, failure_threshold)
        self.max_attempts = max(1, max_attempts)
        self.quota_reduction_ratio = quota_reduction_ratio
        self.min_output_tokens = min_output_tokens

    def invoke(self, request: ModelRequest) -> ModelResponse:
        current = request
        tried = [request.model]
        for attempt in range(1, self.max_attempts + 1):
            try:
                response = self._call_with_quota_renegotiation(current)
            except TransientServerError as exc:
                failures = self.counters.increment(current.model)
                logger.warning(
                    "Transient failure %d for %s (attempt %d/%d): %s",
                    failures,
                    current.model,
                    attempt,
                    self.max_attempts,
                    exc,
                )
                if attempt == self.max_attempts:
                    raise
                if failures >= self.failure_threshold:
                    fallback = self._next_fallback(tried)
                    if fallback is not None:
                        logger.info("Switching from %s to fallback %s", current.model, fallback)
                        self.counters.reset(current.model)
                        tried.append(fallback)
                        current = current.model_copy(update={"model": fallback})
                continue
            self.counters.reset(current.model)
            response = response.model_copy(
                update={"model": response.model or current.model, "requested_model": current.model}
            )
            return response
        raise AssertionError("unreachable")

    def _next_fallback(self, tried: list[str]) -> str | None:
        for candidate in self.fallback_models:
            if candidate not in tried:
                return candidate
        return None

    def renegotiated_budget(self, request: ModelRequest, error: QuotaExceededError) -> int | None:
        """Return the reduced output budget, or None when renegotiation is pointless."""
        if error.affordable_tokens is None:
            return None
        reduced = int(error.affordable_tokens * self.quota_reduction_ratio)
        if reduced < self.min_output_tokens or reduced >= request.max_tokens:
            return None
        return reduced

    def _call_with_quota_renegotiation(self, request: ModelRequest) -> ModelResponse:
        try:
            return self.model.chat(request)
        except QuotaExceededError as exc:
            reduced = self.renegotiated_budget(request, exc)
            if reduced is None:
                logger.error(
                    "Quota exceeded for %s with no usable budget (affordable=%s)",
                    request.model,
                    exc.affordable_tokens,
                )
                raise
            logger.warning(
                "Quota exceeded for %s; retrying once with max_tokens %d (was %d)",
                request.model,
                reduced,
                request.max_tokens,
            )
        return self.model.chat(request.model_copy(update={"max_tokens": reduced}))
