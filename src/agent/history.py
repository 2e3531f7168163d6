"""Persist per-session debate transcripts to JSON files for later review."""

import contextlib
import glob
import json
import logging
import os
import tempfile
from datetime import UTC, datetime
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, messages_to_dict

from src.memory.models import Hypotheses

logger = logging.getLogger(__name__)


def _find_existing_file(history_dir: str, session_id: str) -> str | None:
    """Find an existing transcript file for this session ID."""
    matches = glob.glob(os.path.join(history_dir, f"*_{session_id}.json"))
    return matches[0] if matches else None


def turn_messages(question: str, reply: str, hypotheses: Hypotheses | None = None) -> list[BaseMessage]:
    """Build the message list for one turn; perspectives are kept as named AI messages."""
    messages: list[BaseMessage] = [HumanMessage(content=question)]
    if hypotheses is not None:
        for role, text in hypotheses.items():
            messages.append(AIMessage(content=text, name=f"{role}_agent"))
    messages.append(AIMessage(content=reply, name="debate_coordinator"))
    return messages


def save_turn(
    history_dir: str,
    session_id: str,
    messages: list[BaseMessage],
    model: str,
) -> None:
    """Append one turn to the session transcript. Never raises.

    Args:
        history_dir: Directory to write JSON files into.
        session_id: Conversation session ID (used in the filename).
        messages: Messages of the turn, oldest first.
        model: The LLM model name used for this turn.
    """
    try:
        _save_turn_inner(history_dir, session_id, messages, model)
    except Exception:
        logger.exception("Failed to save conversation history for session '%s'", session_id)


def _save_turn_inner(
    history_dir: str,
    session_id: str,
    messages: list[BaseMessage],
    model: str,
) -> None:
    """Inner implementation that may raise on I/O or serialization errors."""
    if not messages:
        logger.debug("No messages to save for session '%s'", session_id)
        return

    now = datetime.now(UTC).isoformat()
    os.makedirs(history_dir, exist_ok=True)

    previous: list[dict[str, Any]] = []
    created_at = now
    existing_path = _find_existing_file(history_dir, session_id)
    if existing_path:
        filepath = existing_path
        try:
            with open(existing_path) as f:
                existing: dict[str, Any] = json.load(f)
            created_at = existing.get("created_at", now)
            previous = existing.get("messages", [])
        except (json.JSONDecodeError, OSError):
            logger.warning("Transcript %s is unreadable; starting it over", existing_path)
    else:
        timestamp = datetime.now(UTC).strftime("%Y-%m-%d_%H%M%S")
        filepath = os.path.join(history_dir, f"{timestamp}_{session_id}.json")

    serialized = previous + messages_to_dict(messages)
    payload: dict[str, Any] = {
        "session_id": session_id,
        "created_at": created_at,
        "updated_at": now,
        "turn_count": sum(1 for m in serialized if m.get("type") == "human"),
        "model": model,
        "messages": serialized,
    }

    # Atomic write: write to temp file then rename
    fd, tmp_path = tempfile.mkstemp(dir=history_dir, suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(payload, f, indent=2, default=str)
        os.replace(tmp_path, filepath)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise
