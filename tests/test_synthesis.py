"""Tests for recommendation synthesis and summary generation."""

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from src.debate.extraction import NO_DECISION
from src.debate.prompts import SUMMARY_PROMPT, SYNTHESIS_PROMPT
from src.debate.summary import generate_summary
from src.debate.synthesis import RecommendationSynthesizer, SynthesisAborted
from src.memory.models import Hypotheses
from src.memory.store import build_incident
from tests.fakes import SYNTHESIS_TEXT

HYPOTHESES = Hypotheses(reliability="Roll back now.", cost="Cheap to revert.", ux="Users are angry.")


class TestSynthesizerStream:
    async def test_streams_full_text_in_chunks(self, make_llm: Callable[..., Any]) -> None:
        synthesizer = RecommendationSynthesizer(make_llm())

        chunks = [c async for c in synthesizer.stream("Should we rollback?", HYPOTHESES)]

        assert len(chunks) > 1
        assert "".join(chunks) == SYNTHESIS_TEXT

    async def test_prompt_contains_question_and_perspectives(self, make_llm: Callable[..., Any]) -> None:
        llm = make_llm()
        synthesizer = RecommendationSynthesizer(llm)

        _ = [c async for c in synthesizer.stream("Should we rollback?", HYPOTHESES)]

        system, user = llm.calls[0]
        assert system == SYNTHESIS_PROMPT
        assert "Question: Should we rollback?" in user
        assert "Roll back now." in user
        assert "Cheap to revert." in user
        assert "Users are angry." in user

    async def test_abort_stops_stream(self, make_llm: Callable[..., Any]) -> None:
        synthesizer = RecommendationSynthesizer(make_llm())
        abort = asyncio.Event()
        received: list[str] = []

        with pytest.raises(SynthesisAborted):
            async for chunk in synthesizer.stream("Should we rollback?", HYPOTHESES, abort=abort):
                received.append(chunk)
                abort.set()

        assert len(received) == 1

    async def test_model_error_propagates(self, make_llm: Callable[..., Any]) -> None:
        synthesizer = RecommendationSynthesizer(make_llm(fail_synthesis=True))

        with pytest.raises(RuntimeError, match="synthesis model down"):
            _ = [c async for c in synthesizer.stream("Should we rollback?", HYPOTHESES)]


class TestSynthesize:
    async def test_single_call_yields_text_and_fields(self, make_llm: Callable[..., Any]) -> None:
        llm = make_llm()
        synthesizer = RecommendationSynthesizer(llm)

        synthesis = await synthesizer.synthesize("Should we rollback?", HYPOTHESES)

        assert synthesis.text == SYNTHESIS_TEXT
        assert synthesis.decision == "Roll back the checkout release."
        assert synthesis.reasoning == [
            "Error rate breaches the SLO",
            "Rollback is low effort",
            "Protects checkout conversions",
        ]
        assert len(llm.calls_for(SYNTHESIS_PROMPT)) == 1

    async def test_off_template_text_uses_fallbacks(self, make_llm: Callable[..., Any]) -> None:
        synthesizer = RecommendationSynthesizer(make_llm(synthesis="Honestly, hard to say."))

        synthesis = await synthesizer.synthesize("Should we rollback?", HYPOTHESES)

        assert synthesis.decision == NO_DECISION
        assert len(synthesis.reasoning) == 1


class TestGenerateSummary:
    async def test_summary_prompt_includes_decision(self, make_llm: Callable[..., Any]) -> None:
        llm = make_llm(summary="  Rolled back checkout.  ")
        incident = build_incident(
            question="Should we rollback checkout?",
            hypotheses=HYPOTHESES,
            decision="Roll back.",
            reasoning=["SLO breach", "cheap"],
        )

        summary = await generate_summary(llm, incident)

        assert summary == "Rolled back checkout."
        system, user = llm.calls[0]
        assert system == SUMMARY_PROMPT
        assert "Decision: Roll back." in user
        assert "Reasoning: SLO breach; cheap" in user
