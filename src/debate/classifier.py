"""Keyword classifier deciding whether a question warrants a multi-perspective debate."""

DECISION_KEYWORDS: tuple[str, ...] = (
    "rollback",
    "deploy",
    "hotfix",
    "launch",
    "release",
    "should we",
    "decision",
)


def is_decision_question(text: str | None) -> bool:
    """Return True if the text contains any decision keyword (case-insensitive substring)."""
    if not text:
        return False
    lowered = text.lower()
    return any(keyword in lowered for keyword in DECISION_KEYWORDS)
