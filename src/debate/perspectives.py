"""Perspective providers: one role-configured class, three instances.

Every role makes the same single completion call; roles differ only in their
system framing and in the fallback text used when the call fails.
"""

import asyncio
import logging
import time

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel

from src.agent.llm import message_text
from src.debate.prompts import COST_PROMPT, RELIABILITY_PROMPT, UX_PROMPT
from src.memory.models import Hypotheses
from src.observability.callbacks import llm_config
from src.observability.metrics import PERSPECTIVE_CALLS_TOTAL, PERSPECTIVE_DURATION

logger = logging.getLogger(__name__)


class PerspectiveRole(BaseModel):
    """Static configuration of one debate role."""

    key: str  # "reliability" | "cost" | "ux" (matches Hypotheses keys)
    label: str
    system_prompt: str
    fallback: str


RELIABILITY = PerspectiveRole(
    key="reliability",
    label="Reliability",
    system_prompt=RELIABILITY_PROMPT,
    fallback="Reliability Agent unavailable.",
)
COST = PerspectiveRole(
    key="cost",
    label="Cost/Effort",
    system_prompt=COST_PROMPT,
    fallback="Cost Agent unavailable.",
)
UX = PerspectiveRole(
    key="ux",
    label="UX/User Impact",
    system_prompt=UX_PROMPT,
    fallback="UX / User Impact Agent unavailable.",
)

ROLES: tuple[PerspectiveRole, ...] = (RELIABILITY, COST, UX)


class PerspectiveProvider:
    """Produces a short, role-biased opinion on a question."""

    def __init__(self, role: PerspectiveRole, llm: BaseChatModel) -> None:
        self.role = role
        self._llm = llm

    async def get_perspective(self, question: str) -> str:
        """Ask the model for this role's stance. Errors propagate to the caller."""
        response = await self._llm.ainvoke(
            [SystemMessage(content=self.role.system_prompt), HumanMessage(content=question)],
            config=llm_config(f"perspective:{self.role.key}"),
        )
        return message_text(response).strip()


def build_providers(llm: BaseChatModel) -> list[PerspectiveProvider]:
    return [PerspectiveProvider(role, llm) for role in ROLES]


async def _perspective_or_fallback(provider: PerspectiveProvider, question: str, timeout: float) -> str:
    role = provider.role
    start = time.monotonic()
    try:
        text = await asyncio.wait_for(provider.get_perspective(question), timeout=timeout)
    except Exception:
        PERSPECTIVE_CALLS_TOTAL.labels(role=role.key, status="fallback").inc()
        logger.warning("Error getting %s perspective; using fallback", role.key, exc_info=True)
        return role.fallback
    finally:
        PERSPECTIVE_DURATION.labels(role=role.key).observe(time.monotonic() - start)

    PERSPECTIVE_CALLS_TOTAL.labels(role=role.key, status="success").inc()
    return text


async def gather_perspectives(
    providers: list[PerspectiveProvider],
    question: str,
    timeout: float = 30.0,
) -> Hypotheses:
    """Query every provider concurrently; a failed or slow provider yields its fallback.

    Args:
        providers: One provider per role (reliability, cost, ux).
        question: The operator's decision question.
        timeout: Per-provider limit in seconds.

    Returns:
        Hypotheses with all three keys populated.
    """
    texts = await asyncio.gather(*(_perspective_or_fallback(p, question, timeout) for p in providers))
    collected = {p.role.key: text for p, text in zip(providers, texts, strict=True)}
    return Hypotheses(
        reliability=collected.get("reliability", RELIABILITY.fallback),
        cost=collected.get("cost", COST.fallback),
        ux=collected.get("ux", UX.fallback),
    )
