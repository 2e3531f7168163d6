"""Debate coordinator: per-question state machine wiring the debate together.

classify → fan out to the role providers (concurrently) → stream the synthesis
to the caller → persist the incident in a background task.

The caller only ever waits on classification, fan-out, and synthesis.
Persistence (record append, summary generation, summary attach) happens after
the stream has been delivered, in a task with its own error boundary: a
failure there is logged and counted but never reaches the caller.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Coroutine
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from src.agent.history import save_turn, turn_messages
from src.agent.llm import create_llm, message_text
from src.config import get_settings
from src.debate.classifier import is_decision_question
from src.debate.extraction import extract_metrics_snapshot, parse_synthesis
from src.debate.perspectives import PerspectiveProvider, build_providers, gather_perspectives
from src.debate.prompts import GENERIC_PROMPT
from src.debate.summary import generate_summary
from src.debate.synthesis import RecommendationSynthesizer, SynthesisAborted
from src.memory.models import DeleteResult, Hypotheses, IncidentOutcome, IncidentRecord, IncidentStatus
from src.memory.store import IncidentStore, build_incident, get_initialized_connection
from src.observability.callbacks import llm_config
from src.observability.metrics import DEBATES_TOTAL, INCIDENT_PERSIST_TOTAL

logger = logging.getLogger(__name__)


class DebateCoordinator:
    """Owns one coordination context: its providers, synthesizer, and incident store."""

    def __init__(
        self,
        llm: BaseChatModel | None,
        store: IncidentStore,
        *,
        llm_factory: Callable[[], BaseChatModel] | None = None,
        providers: list[PerspectiveProvider] | None = None,
        synthesizer: RecommendationSynthesizer | None = None,
        perspective_timeout: float = 30.0,
        history_dir: str = "",
        model_name: str = "",
    ) -> None:
        if llm is None and llm_factory is None:
            msg = "DebateCoordinator needs an llm or an llm_factory"
            raise ValueError(msg)
        self._llm = llm
        self._llm_factory = llm_factory or (lambda: llm)  # type: ignore[return-value]
        self.store = store
        self._providers = providers
        self._synthesizer = synthesizer
        self._perspective_timeout = perspective_timeout
        self._history_dir = history_dir
        self._model_name = model_name
        # Strong references so background tasks aren't garbage-collected mid-flight
        self._background: set[asyncio.Task[None]] = set()

    @property
    def context(self) -> str:
        return self.store.context

    def _model(self) -> BaseChatModel:
        """Return the chat model, creating it on first use.

        Incident queries and operator actions never call this, so they keep
        working when no completion provider is configured.

        Raises:
            ValueError: If the model factory cannot build a model.
        """
        if self._llm is None:
            self._llm = self._llm_factory()
        if self._providers is None:
            self._providers = build_providers(self._llm)
        if self._synthesizer is None:
            self._synthesizer = RecommendationSynthesizer(self._llm)
        return self._llm

    # ------------------------------------------------------------------
    # Turn handling
    # ------------------------------------------------------------------

    async def respond(
        self,
        question: str,
        *,
        session_id: str = "default",
        abort: asyncio.Event | None = None,
    ) -> AsyncIterator[str]:
        """Answer one operator turn, yielding reply text as it is produced.

        Decision questions are debated and recorded as incidents; anything
        else gets a plain single-completion reply.

        Raises:
            ValueError: If the chat model cannot be created (e.g. no API key).
            Exception: Whatever the synthesis (or generic reply) call raised.
                Perspective failures never propagate.
        """
        llm = self._model()
        if not is_decision_question(question):
            chunks: list[str] = []
            async for chunk in self._generic_reply(llm, question, abort):
                chunks.append(chunk)
                yield chunk
            await asyncio.to_thread(self._save_history, session_id, question, "".join(chunks), None)
            return

        hypotheses = await self.gather_perspectives(question)

        synthesis_chunks: list[str] = []
        try:
            async for chunk in self._synthesizer.stream(question, hypotheses, abort=abort):  # type: ignore[union-attr]
                synthesis_chunks.append(chunk)
                yield chunk
        except SynthesisAborted:
            DEBATES_TOTAL.labels(outcome="aborted").inc()
            return
        except Exception:
            DEBATES_TOTAL.labels(outcome="failed").inc()
            logger.exception("Synthesis failed for question %r", question[:200])
            raise

        DEBATES_TOTAL.labels(outcome="completed").inc()
        self._spawn(self._persist_incident(llm, question, hypotheses, "".join(synthesis_chunks), session_id))

    async def gather_perspectives(self, question: str) -> Hypotheses:
        self._model()
        return await gather_perspectives(self._providers, question, timeout=self._perspective_timeout)  # type: ignore[arg-type]

    async def _generic_reply(
        self, llm: BaseChatModel, question: str, abort: asyncio.Event | None
    ) -> AsyncIterator[str]:
        messages = [SystemMessage(content=GENERIC_PROMPT), HumanMessage(content=question)]
        async for chunk in llm.astream(messages, config=llm_config("generic")):
            if abort is not None and abort.is_set():
                logger.info("Generic reply aborted by caller")
                return
            text = message_text(chunk)
            if text:
                yield text

    # ------------------------------------------------------------------
    # Background persistence
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain(self) -> None:
        """Wait for outstanding background persistence tasks to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _persist_incident(
        self,
        llm: BaseChatModel,
        question: str,
        hypotheses: Hypotheses,
        synthesis_text: str,
        session_id: str,
    ) -> None:
        """Record the debate as an incident, then back-fill its summary. Never raises."""
        try:
            synthesis = parse_synthesis(synthesis_text)
            incident = build_incident(
                question=question,
                hypotheses=hypotheses,
                decision=synthesis.decision,
                reasoning=synthesis.reasoning,
                metrics_snapshot=extract_metrics_snapshot(question),
            )
            await asyncio.to_thread(self.store.append, incident)

            summary = await generate_summary(llm, incident)
            await asyncio.to_thread(self.store.attach_summary, incident["id"], summary)
        except Exception:
            INCIDENT_PERSIST_TOTAL.labels(status="error").inc()
            logger.exception("Error storing incident memory for question %r", question[:200])
        else:
            INCIDENT_PERSIST_TOTAL.labels(status="success").inc()

        await asyncio.to_thread(self._save_history, session_id, question, synthesis_text, hypotheses)

    def _save_history(self, session_id: str, question: str, reply: str, hypotheses: Hypotheses | None) -> None:
        if not self._history_dir:
            return
        save_turn(self._history_dir, session_id, turn_messages(question, reply, hypotheses), self._model_name)

    # ------------------------------------------------------------------
    # Incident queries and operator actions
    # ------------------------------------------------------------------

    async def incidents(self, search_query: str | None = None) -> list[IncidentRecord]:
        return await asyncio.to_thread(self.store.search, search_query)

    async def delete_incident(self, incident_id: str) -> DeleteResult:
        return await asyncio.to_thread(self.store.delete, incident_id)

    async def update_incident_status(
        self,
        incident_id: str,
        status: IncidentStatus,
        outcome: IncidentOutcome | None = None,
    ) -> IncidentRecord | None:
        return await asyncio.to_thread(self.store.update_status, incident_id, status, outcome)


def build_coordinator(context: str, llm: BaseChatModel | None = None) -> DebateCoordinator:
    """Create a coordinator for a context, backed by the configured model and SQLite store.

    Args:
        context: Coordination context name; incidents are scoped to it.
        llm: Chat model to use. Defaults to one built from settings on the
            first turn, so incident queries work without an API key.

    Raises:
        ValueError: If the memory store is not configured.
    """
    settings = get_settings()
    store = IncidentStore(get_initialized_connection(), context=context)
    logger.info("Coordinator ready for context '%s' (model=%s)", context, settings.active_model)
    return DebateCoordinator(
        llm,
        store,
        llm_factory=lambda: create_llm(settings),
        perspective_timeout=settings.perspective_timeout_seconds,
        history_dir=settings.conversation_history_dir,
        model_name=settings.active_model,
    )
