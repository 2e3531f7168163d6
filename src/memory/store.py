"""SQLite-based incident store — connection management, schema init, and CRUD.

All database operations use parameterized queries to prevent SQL injection.
The schema is auto-created on first access via CREATE TABLE IF NOT EXISTS
(idempotent).

An ``IncidentStore`` owns the records of one coordination context. Every
mutation runs as a single read-modify-write step under the store's lock and
inside one SQLite transaction, and stamps the context's ``last_updated``.
Connections are opened with check_same_thread=False so store calls can be
pushed onto worker threads with ``asyncio.to_thread``.
"""

import json
import logging
import sqlite3
import threading
from datetime import UTC, datetime
from uuid import uuid4

from src.config import get_settings
from src.memory.models import (
    INCIDENT_STATUSES,
    DeleteResult,
    Hypotheses,
    IncidentOutcome,
    IncidentRecord,
    IncidentStatus,
    MetricsSnapshot,
)

logger = logging.getLogger(__name__)

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS coordinator_state (
    context       TEXT PRIMARY KEY,
    last_updated  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS incidents (
    seq                     INTEGER PRIMARY KEY AUTOINCREMENT,
    id                      TEXT NOT NULL UNIQUE,
    context                 TEXT NOT NULL,
    question                TEXT NOT NULL,
    timestamp               TEXT NOT NULL,
    status                  TEXT NOT NULL DEFAULT 'open',
    metrics_snapshot        TEXT,
    hypothesis_reliability  TEXT NOT NULL,
    hypothesis_cost         TEXT NOT NULL,
    hypothesis_ux           TEXT NOT NULL,
    decision                TEXT NOT NULL,
    reasoning               TEXT NOT NULL DEFAULT '[]',
    summary                 TEXT,
    outcome                 TEXT
);
CREATE INDEX IF NOT EXISTS idx_incidents_context ON incidents(context, timestamp);
"""


def _now() -> str:
    return datetime.now(UTC).isoformat()


def get_connection(db_path: str | None = None) -> sqlite3.Connection:
    """Open a SQLite connection with WAL mode for concurrent reads.

    Args:
        db_path: Explicit path to the database file. If None, reads from settings.
                 Pass ":memory:" for in-memory databases (tests).

    Returns:
        A new sqlite3.Connection with row_factory set to sqlite3.Row.

    Raises:
        ValueError: If memory is not configured (empty db path).
    """
    if db_path is None:
        settings = get_settings()
        db_path = settings.memory_db_path
    if not db_path:
        msg = "Memory store not configured (MEMORY_DB_PATH is empty)"
        raise ValueError(msg)

    conn = sqlite3.connect(db_path, check_same_thread=False, timeout=30.0)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    return conn


def init_schema(conn: sqlite3.Connection) -> None:
    """Create tables and indexes if they don't exist (idempotent)."""
    conn.executescript(_SCHEMA_SQL)


def is_memory_configured() -> bool:
    """Check whether the memory store is configured (non-empty db path)."""
    try:
        settings = get_settings()
        return bool(settings.memory_db_path)
    except Exception:
        return False


def get_initialized_connection(db_path: str | None = None) -> sqlite3.Connection:
    """Get a connection with schema already initialized. Convenience wrapper."""
    conn = get_connection(db_path)
    init_schema(conn)
    return conn


def build_incident(
    *,
    question: str,
    hypotheses: Hypotheses,
    decision: str,
    reasoning: list[str],
    metrics_snapshot: MetricsSnapshot | None = None,
) -> IncidentRecord:
    """Create a fresh open incident with a unique id and the current timestamp."""
    return IncidentRecord(
        id=uuid4().hex,
        question=question,
        timestamp=_now(),
        status="open",
        metrics_snapshot=metrics_snapshot,
        hypotheses=hypotheses,
        decision=decision,
        reasoning=reasoning[:3],
        summary=None,
        outcome=None,
    )


def _sort_newest_first(records: list[IncidentRecord]) -> list[IncidentRecord]:
    """Sort by timestamp descending. Expects insertion order so ties list the later append first."""
    return sorted(reversed(records), key=lambda r: datetime.fromisoformat(r["timestamp"]), reverse=True)


def _matches(record: IncidentRecord, query: str) -> bool:
    """Case-insensitive substring match across the searchable text fields."""
    needle = query.lower()
    hypotheses = record["hypotheses"]
    fields = [
        record["question"],
        record["decision"],
        hypotheses["reliability"],
        hypotheses["cost"],
        hypotheses["ux"],
        *record["reasoning"],
        record["summary"] or "",
    ]
    return any(needle in field.lower() for field in fields)


class IncidentStore:
    """Ordered incident records plus the ``last_updated`` stamp of one context."""

    def __init__(self, conn: sqlite3.Connection, context: str = "default") -> None:
        self._conn = conn
        self.context = context
        self._lock = threading.Lock()
        init_schema(conn)
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT OR IGNORE INTO coordinator_state (context, last_updated) VALUES (?, ?)",
                (context, _now()),
            )

    def close(self) -> None:
        self._conn.close()

    def __len__(self) -> int:
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) AS n FROM incidents WHERE context = ?", (self.context,)
            ).fetchone()
        return int(row["n"])

    def _touch(self) -> None:
        """Stamp last_updated. Caller holds the lock and an open transaction."""
        self._conn.execute(
            "UPDATE coordinator_state SET last_updated = ? WHERE context = ?",
            (_now(), self.context),
        )

    def last_updated(self) -> str:
        with self._lock:
            row = self._conn.execute(
                "SELECT last_updated FROM coordinator_state WHERE context = ?", (self.context,)
            ).fetchone()
        return str(row["last_updated"])

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def append(self, record: IncidentRecord) -> None:
        """Add a record at the end of the sequence. Repeated questions are not deduplicated."""
        hypotheses = record["hypotheses"]
        with self._lock, self._conn:
            self._conn.execute(
                """INSERT INTO incidents
                   (id, context, question, timestamp, status, metrics_snapshot,
                    hypothesis_reliability, hypothesis_cost, hypothesis_ux,
                    decision, reasoning, summary, outcome)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    record["id"],
                    self.context,
                    record["question"],
                    record["timestamp"],
                    record["status"],
                    json.dumps(record["metrics_snapshot"]) if record["metrics_snapshot"] else None,
                    hypotheses["reliability"],
                    hypotheses["cost"],
                    hypotheses["ux"],
                    record["decision"],
                    json.dumps(record["reasoning"][:3]),
                    record["summary"],
                    json.dumps(record["outcome"]) if record["outcome"] else None,
                ),
            )
            self._touch()
        logger.info("Stored incident %s in context '%s'", record["id"], self.context)

    def attach_summary(self, incident_id: str, summary: str) -> bool:
        """Back-fill the summary of a stored incident.

        Returns False (and changes nothing) if the incident no longer exists,
        e.g. because it was deleted while the summary was being generated.
        """
        with self._lock, self._conn:
            cursor = self._conn.execute(
                "UPDATE incidents SET summary = ? WHERE id = ? AND context = ?",
                (summary, incident_id, self.context),
            )
            if cursor.rowcount == 0:
                logger.debug("Summary for missing incident %s dropped", incident_id)
                return False
            self._touch()
        return True

    def delete(self, incident_id: str) -> DeleteResult:
        """Remove an incident. Idempotent: unknown ids still report success."""
        with self._lock, self._conn:
            self._conn.execute(
                "DELETE FROM incidents WHERE id = ? AND context = ?",
                (incident_id, self.context),
            )
            self._touch()
        return DeleteResult(success=True, deleted_id=incident_id)

    def update_status(
        self,
        incident_id: str,
        status: IncidentStatus,
        outcome: IncidentOutcome | None = None,
    ) -> IncidentRecord | None:
        """Set the status (and optionally the outcome) of an incident.

        Returns the updated record, or None if the id is unknown.

        Raises:
            ValueError: If status is not one of open, monitoring, resolved.
        """
        if status not in INCIDENT_STATUSES:
            msg = f"Invalid incident status '{status}' (expected one of {INCIDENT_STATUSES})"
            raise ValueError(msg)

        with self._lock, self._conn:
            if outcome is not None:
                cursor = self._conn.execute(
                    "UPDATE incidents SET status = ?, outcome = ? WHERE id = ? AND context = ?",
                    (status, json.dumps(outcome), incident_id, self.context),
                )
            else:
                cursor = self._conn.execute(
                    "UPDATE incidents SET status = ? WHERE id = ? AND context = ?",
                    (status, incident_id, self.context),
                )
            if cursor.rowcount == 0:
                return None
            self._touch()
            row = self._conn.execute("SELECT * FROM incidents WHERE id = ?", (incident_id,)).fetchone()
        return _row_to_incident(row)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, incident_id: str) -> IncidentRecord | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM incidents WHERE id = ? AND context = ?",
                (incident_id, self.context),
            ).fetchone()
        return _row_to_incident(row) if row is not None else None

    def search(self, query: str | None = None) -> list[IncidentRecord]:
        """List incidents newest first, optionally filtered by a free-text query.

        Args:
            query: Case-insensitive substring matched against the question,
                decision, each hypothesis, each reasoning entry, and the summary.
                Empty or None returns everything.

        Returns:
            Matching incidents sorted by timestamp, most recent first.
        """
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM incidents WHERE context = ? ORDER BY seq",
                (self.context,),
            ).fetchall()
        records = [_row_to_incident(r) for r in rows]
        if query:
            records = [r for r in records if _matches(r, query)]
        return _sort_newest_first(records)


def _row_to_incident(row: sqlite3.Row) -> IncidentRecord:
    metrics_snapshot: MetricsSnapshot | None = json.loads(row["metrics_snapshot"]) if row["metrics_snapshot"] else None
    outcome: IncidentOutcome | None = json.loads(row["outcome"]) if row["outcome"] else None
    return IncidentRecord(
        id=row["id"],
        question=row["question"],
        timestamp=row["timestamp"],
        status=row["status"],
        metrics_snapshot=metrics_snapshot,
        hypotheses=Hypotheses(
            reliability=row["hypothesis_reliability"],
            cost=row["hypothesis_cost"],
            ux=row["hypothesis_ux"],
        ),
        decision=row["decision"],
        reasoning=json.loads(row["reasoning"]),
        summary=row["summary"],
        outcome=outcome,
    )
