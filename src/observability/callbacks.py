"""LangChain callback handler that records Prometheus metrics for debate LLM calls.

Every completion call in a debate (each perspective, the synthesis, the
summary, the generic reply) is made with ``llm_config(purpose)``, which
attaches a fresh ``MetricsCallbackHandler``.  The ``purpose`` label is what
lets a dashboard tell a slow cost perspective apart from a slow synthesis.

Token counts are read from the message ``usage_metadata`` when the provider
reports it (streamed and Anthropic calls), falling back to the OpenAI-style
``llm_output["token_usage"]`` block.

Hooks swallow their own errors; metrics collection must never crash a debate.
"""

import logging
import time
from typing import Any
from uuid import UUID

from langchain_core.callbacks import BaseCallbackHandler
from langchain_core.messages import BaseMessage
from langchain_core.outputs import ChatGeneration, LLMResult
from langchain_core.runnables import RunnableConfig

from src.observability.metrics import (
    COST_PER_TOKEN,
    DEFAULT_COST_PER_TOKEN,
    LLM_CALL_DURATION,
    LLM_CALLS_TOTAL,
    LLM_ESTIMATED_COST,
    LLM_TOKEN_USAGE,
)

logger = logging.getLogger(__name__)


def _token_counts(response: LLMResult) -> tuple[int, int, str]:
    """Return (prompt_tokens, completion_tokens, model_name) for a finished call."""
    llm_output = response.llm_output or {}
    model_name = str(llm_output.get("model_name") or llm_output.get("model") or "")

    for generations in response.generations:
        for generation in generations:
            if not isinstance(generation, ChatGeneration):
                continue
            usage = getattr(generation.message, "usage_metadata", None)
            if usage:
                if not model_name:
                    model_name = str(generation.message.response_metadata.get("model_name", ""))
                return usage.get("input_tokens", 0), usage.get("output_tokens", 0), model_name

    token_usage: dict[str, int] = llm_output.get("token_usage") or {}
    return token_usage.get("prompt_tokens", 0), token_usage.get("completion_tokens", 0), model_name


def _pricing(model_name: str) -> dict[str, float]:
    for prefix, costs in COST_PER_TOKEN.items():
        if model_name.startswith(prefix):
            return costs
    return DEFAULT_COST_PER_TOKEN


class MetricsCallbackHandler(BaseCallbackHandler):
    """Counts calls, latency, tokens, and estimated cost for one completion purpose."""

    def __init__(self, purpose: str) -> None:
        super().__init__()
        self.purpose = purpose
        self._start_times: dict[UUID, float] = {}

    def on_chat_model_start(
        self,
        serialized: dict[str, Any],
        messages: list[list[BaseMessage]],
        *,
        run_id: UUID,
        parent_run_id: UUID | None = None,
        **kwargs: Any,
    ) -> None:
        self._start_times[run_id] = time.monotonic()

    def _observe_duration(self, run_id: UUID) -> None:
        start = self._start_times.pop(run_id, None)
        if start is not None:
            LLM_CALL_DURATION.labels(purpose=self.purpose).observe(time.monotonic() - start)

    def on_llm_end(
        self,
        response: LLMResult,
        *,
        run_id: UUID,
        parent_run_id: UUID | None = None,
        **kwargs: Any,
    ) -> None:
        try:
            LLM_CALLS_TOTAL.labels(purpose=self.purpose, status="success").inc()
            self._observe_duration(run_id)

            prompt_tokens, completion_tokens, model_name = _token_counts(response)
            if not prompt_tokens and not completion_tokens:
                return

            LLM_TOKEN_USAGE.labels(purpose=self.purpose, type="prompt").inc(prompt_tokens)
            LLM_TOKEN_USAGE.labels(purpose=self.purpose, type="completion").inc(completion_tokens)

            pricing = _pricing(model_name)
            LLM_ESTIMATED_COST.inc(prompt_tokens * pricing["prompt"] + completion_tokens * pricing["completion"])
        except Exception:
            logger.debug("metrics: on_llm_end failed", exc_info=True)

    def on_llm_error(
        self,
        error: BaseException,
        *,
        run_id: UUID,
        parent_run_id: UUID | None = None,
        **kwargs: Any,
    ) -> None:
        try:
            LLM_CALLS_TOTAL.labels(purpose=self.purpose, status="error").inc()
            self._observe_duration(run_id)
        except Exception:
            logger.debug("metrics: on_llm_error failed", exc_info=True)


def llm_config(purpose: str) -> RunnableConfig:
    """Runnable config carrying a fresh metrics handler for one completion call."""
    return {"callbacks": [MetricsCallbackHandler(purpose)], "run_name": purpose}
