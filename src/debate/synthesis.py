"""Recommendation synthesis: one streamed completion over the three perspectives.

The streamed text is what the operator sees; the structured fields stored with
the incident are parsed from that same text afterwards, so a debate costs a
single synthesis call.
"""

import asyncio
import logging
from collections.abc import AsyncIterator

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from src.agent.llm import message_text
from src.debate.extraction import Synthesis, parse_synthesis
from src.debate.prompts import SYNTHESIS_PROMPT, SYNTHESIS_USER_TEMPLATE
from src.memory.models import Hypotheses
from src.observability.callbacks import llm_config

logger = logging.getLogger(__name__)


class SynthesisAborted(Exception):
    """Raised when the caller's abort signal stops a synthesis stream."""


class RecommendationSynthesizer:
    """Combines the role perspectives into a single templated recommendation."""

    def __init__(self, llm: BaseChatModel) -> None:
        self._llm = llm

    async def stream(
        self,
        question: str,
        hypotheses: Hypotheses,
        abort: asyncio.Event | None = None,
    ) -> AsyncIterator[str]:
        """Yield synthesis text chunks as the model produces them.

        Raises:
            SynthesisAborted: If ``abort`` is set before the stream finishes.
        """
        messages = [
            SystemMessage(content=SYNTHESIS_PROMPT),
            HumanMessage(
                content=SYNTHESIS_USER_TEMPLATE.format(
                    question=question,
                    reliability=hypotheses["reliability"],
                    cost=hypotheses["cost"],
                    ux=hypotheses["ux"],
                )
            ),
        ]
        async for chunk in self._llm.astream(messages, config=llm_config("synthesis")):
            if abort is not None and abort.is_set():
                logger.info("Synthesis aborted by caller")
                raise SynthesisAborted
            text = message_text(chunk)
            if text:
                yield text

    async def synthesize(
        self,
        question: str,
        hypotheses: Hypotheses,
        abort: asyncio.Event | None = None,
    ) -> Synthesis:
        """Run the full synthesis and return the text with its extracted fields."""
        chunks = [chunk async for chunk in self.stream(question, hypotheses, abort=abort)]
        return parse_synthesis("".join(chunks))
