"""Pull structured fields out of free-text model output and operator questions.

The synthesis prompt asks the model for a fixed template (a Final
Recommendation line and a Why block). Nothing here raises on a template miss:
each extractor falls back to a fixed literal so a debate always yields a
storable record.
"""

import logging
import re

from pydantic import BaseModel, Field

from src.memory.models import MetricsSnapshot
from src.observability.metrics import EXTRACTION_MISSES_TOTAL

logger = logging.getLogger(__name__)

NO_DECISION = "No clear decision reached"
DEFAULT_REASONING = "Decision made based on agent perspectives"
MAX_REASONING = 3

# "**Final Recommendation:**\nRoll back." or "Final Recommendations: Roll back."
_DECISION_RE = re.compile(
    r"final recommendations?\b\**[ \t]*:?[ \t]*\**\s*(?P<decision>[^\n]+)",
    re.IGNORECASE,
)

# Header line starting with "Why" (plain, bold, or a markdown heading); the
# block runs until the next bold header line or the end of the text.
_WHY_RE = re.compile(
    r"^[ \t]*(?:\*\*|#+[ \t]*)?why\b[^\n:]*:?(?:\*\*)?(?P<block>.*?)(?=^[ \t]*\*\*|\Z)",
    re.IGNORECASE | re.MULTILINE | re.DOTALL,
)
_WHY_HEADER_RE = re.compile(r"^[ \t]*(?:\*\*|#+[ \t]*)?why\b", re.IGNORECASE)

_BULLET_RE = re.compile(r"^[ \t]*(?:[-*•]|\d+[.)])[ \t]+", re.MULTILINE)

_NUMBER = r"(\d+(?:\.\d+)?)"
_ERROR_RATE_RE = re.compile(rf"error[ _-]?rate(?:\s+is)?[:\s]+{_NUMBER}\s*%?", re.IGNORECASE)
_LATENCY_RE = re.compile(rf"(?:latency|p95)(?:\s+is)?[:\s]+{_NUMBER}\s*(?:ms)?", re.IGNORECASE)
_THROUGHPUT_RE = re.compile(rf"throughput(?:\s+is)?[:\s]+{_NUMBER}", re.IGNORECASE)


class Synthesis(BaseModel):
    """Full synthesis text plus the fields extracted from it."""

    text: str
    decision: str
    reasoning: list[str] = Field(default_factory=list)


def extract_decision(text: str) -> str:
    """Return the line following the Final Recommendation marker, or NO_DECISION."""
    match = _DECISION_RE.search(text)
    if match:
        raw = match.group("decision")
        decision = raw.strip().strip("*").strip()
        if decision and not _WHY_HEADER_RE.match(raw):
            return decision
    EXTRACTION_MISSES_TOTAL.labels(field="decision").inc()
    logger.debug("No Final Recommendation found in synthesis text")
    return NO_DECISION


def extract_reasoning(text: str) -> list[str]:
    """Return up to three bullet points from the Why block, or the default reasoning."""
    match = _WHY_RE.search(text)
    if match:
        pieces = _BULLET_RE.split(match.group("block"))
        items = [" ".join(piece.split()).strip("*").strip() for piece in pieces]
        reasoning = [item for item in items if item][:MAX_REASONING]
        if reasoning:
            return reasoning
    EXTRACTION_MISSES_TOTAL.labels(field="reasoning").inc()
    logger.debug("No Why block found in synthesis text")
    return [DEFAULT_REASONING]


def parse_synthesis(text: str) -> Synthesis:
    return Synthesis(text=text, decision=extract_decision(text), reasoning=extract_reasoning(text))


def extract_metrics_snapshot(question: str) -> MetricsSnapshot | None:
    """Opportunistically pick error rate / latency / throughput figures out of a question.

    Returns only the fields actually found, or None if there are none.
    """
    snapshot = MetricsSnapshot()
    if match := _ERROR_RATE_RE.search(question):
        snapshot["error_rate"] = float(match.group(1))
    if match := _LATENCY_RE.search(question):
        snapshot["latency"] = float(match.group(1))
    if match := _THROUGHPUT_RE.search(question):
        snapshot["throughput"] = float(match.group(1))
    return snapshot or None
