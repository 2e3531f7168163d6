"""Unit tests for the incident store — in-memory SQLite, no LLM involved."""

import asyncio
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta

import pytest

from src.memory.models import Hypotheses, IncidentRecord
from src.memory.store import (
    IncidentStore,
    build_incident,
    get_connection,
    get_initialized_connection,
    init_schema,
    is_memory_configured,
)

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _make_incident(
    question: str = "Should we rollback?",
    *,
    decision: str = "Roll back.",
    reasoning: list[str] | None = None,
    hypotheses: Hypotheses | None = None,
    minutes: int = 0,
) -> IncidentRecord:
    incident = build_incident(
        question=question,
        hypotheses=hypotheses or Hypotheses(reliability="rel", cost="cost", ux="ux"),
        decision=decision,
        reasoning=reasoning or ["reason"],
    )
    incident["timestamp"] = (BASE_TIME + timedelta(minutes=minutes)).isoformat()
    return incident


# ---------------------------------------------------------------------------
# Schema / connection
# ---------------------------------------------------------------------------


class TestSchemaInit:
    def test_creates_tables(self) -> None:
        conn = get_initialized_connection(":memory:")
        tables = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
        table_names = {row["name"] for row in tables}
        assert "incidents" in table_names
        assert "coordinator_state" in table_names

    def test_idempotent(self) -> None:
        conn = get_connection(":memory:")
        init_schema(conn)
        init_schema(conn)
        indexes = conn.execute("SELECT name FROM sqlite_master WHERE type='index'").fetchall()
        assert "idx_incidents_context" in {row["name"] for row in indexes}

    def test_empty_path_raises(self) -> None:
        with pytest.raises(ValueError, match="not configured"):
            get_connection("")

    def test_is_memory_configured(self, mock_settings: object) -> None:
        assert is_memory_configured() is True
        mock_settings.memory_db_path = ""  # type: ignore[attr-defined]
        assert is_memory_configured() is False


class TestBuildIncident:
    def test_defaults(self) -> None:
        incident = build_incident(
            question="Should we deploy?",
            hypotheses=Hypotheses(reliability="r", cost="c", ux="u"),
            decision="Deploy.",
            reasoning=["a", "b", "c", "d"],
        )
        assert incident["status"] == "open"
        assert incident["summary"] is None
        assert incident["metrics_snapshot"] is None
        assert incident["reasoning"] == ["a", "b", "c"]
        assert datetime.fromisoformat(incident["timestamp"]).tzinfo is not None

    def test_unique_ids(self) -> None:
        ids = {_make_incident()["id"] for _ in range(50)}
        assert len(ids) == 50


# ---------------------------------------------------------------------------
# Append / get
# ---------------------------------------------------------------------------


class TestAppend:
    def test_append_and_get(self, store: IncidentStore) -> None:
        incident = _make_incident()
        incident["metrics_snapshot"] = {"error_rate": 6.5}
        store.append(incident)

        stored = store.get(incident["id"])
        assert stored == incident
        assert len(store) == 1

    def test_repeated_questions_are_not_deduplicated(self, store: IncidentStore) -> None:
        store.append(_make_incident("Should we rollback checkout?"))
        store.append(_make_incident("Should we rollback checkout?"))
        assert len(store) == 2

    def test_updates_last_updated(self, store: IncidentStore) -> None:
        before = store.last_updated()
        store.append(_make_incident())
        assert store.last_updated() >= before

    def test_get_missing_returns_none(self, store: IncidentStore) -> None:
        assert store.get("nope") is None

    def test_contexts_are_isolated(self) -> None:
        conn = get_connection(":memory:")
        alpha = IncidentStore(conn, context="alpha")
        beta = IncidentStore(conn, context="beta")

        alpha.append(_make_incident("Should we deploy alpha?"))

        assert len(alpha) == 1
        assert len(beta) == 0
        assert beta.search() == []

    def test_concurrent_appends_lose_nothing(self, store: IncidentStore) -> None:
        incidents = [_make_incident(f"Should we release build {i}?", minutes=i) for i in range(40)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(store.append, incidents))

        assert len(store) == 40
        assert {i["id"] for i in store.search()} == {i["id"] for i in incidents}

    async def test_concurrent_appends_via_to_thread(self, store: IncidentStore) -> None:
        incidents = [_make_incident(f"Should we deploy {i}?") for i in range(25)]
        await asyncio.gather(*(asyncio.to_thread(store.append, inc) for inc in incidents))
        assert len(store) == 25


# ---------------------------------------------------------------------------
# Summary back-fill
# ---------------------------------------------------------------------------


class TestAttachSummary:
    def test_attaches_summary(self, store: IncidentStore) -> None:
        incident = _make_incident()
        store.append(incident)

        assert store.attach_summary(incident["id"], "Rolled back to stop errors.") is True
        stored = store.get(incident["id"])
        assert stored is not None
        assert stored["summary"] == "Rolled back to stop errors."

    def test_missing_id_is_noop(self, store: IncidentStore) -> None:
        incident = _make_incident()
        store.append(incident)
        store.delete(incident["id"])

        assert store.attach_summary(incident["id"], "too late") is False
        assert len(store) == 0


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


class TestSearch:
    @pytest.fixture
    def populated(self, store: IncidentStore) -> IncidentStore:
        store.append(_make_incident("Should we rollback CHECKOUT v2?", minutes=1))
        store.append(_make_incident("Should we deploy search?", decision="Hold the checkout freeze.", minutes=5))
        store.append(
            _make_incident(
                "Release the mobile app?",
                hypotheses=Hypotheses(reliability="ok", cost="Checkout team is busy", ux="fine"),
                minutes=3,
            )
        )
        store.append(_make_incident("Hotfix login?", reasoning=["Affects checkout sessions"], minutes=2))
        unrelated = _make_incident("Launch billing emails?", minutes=4)
        store.append(unrelated)
        return store

    def test_no_query_returns_all_newest_first(self, populated: IncidentStore) -> None:
        results = populated.search()
        assert len(results) == 5
        timestamps = [r["timestamp"] for r in results]
        assert timestamps == sorted(timestamps, reverse=True)

    def test_empty_query_returns_all(self, populated: IncidentStore) -> None:
        assert len(populated.search("")) == 5

    def test_query_matches_all_searchable_fields(self, populated: IncidentStore) -> None:
        results = populated.search("checkout")
        questions = [r["question"] for r in results]
        # question, decision, hypothesis, reasoning matches; newest first
        assert questions == [
            "Should we deploy search?",
            "Release the mobile app?",
            "Hotfix login?",
            "Should we rollback CHECKOUT v2?",
        ]

    def test_query_matches_summary(self, populated: IncidentStore) -> None:
        target = populated.search("billing")[0]
        populated.attach_summary(target["id"], "Checkout receipts moved to billing emails.")
        assert len(populated.search("checkout")) == 5

    def test_no_match(self, populated: IncidentStore) -> None:
        assert populated.search("kubernetes") == []

    def test_search_does_not_mutate(self, populated: IncidentStore) -> None:
        before = populated.last_updated()
        populated.search("checkout")
        assert populated.last_updated() == before

    def test_ties_list_later_append_first(self, store: IncidentStore) -> None:
        first = _make_incident("Should we deploy A?")
        second = _make_incident("Should we deploy B?")
        store.append(first)
        store.append(second)
        assert [r["id"] for r in store.search()] == [second["id"], first["id"]]


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------


class TestDelete:
    def test_deletes_existing(self, store: IncidentStore) -> None:
        incident = _make_incident()
        store.append(incident)

        result = store.delete(incident["id"])

        assert result == {"success": True, "deleted_id": incident["id"]}
        assert store.get(incident["id"]) is None

    def test_missing_id_is_idempotent(self, store: IncidentStore) -> None:
        incident = _make_incident()
        store.append(incident)

        result = store.delete("does-not-exist")

        assert result == {"success": True, "deleted_id": "does-not-exist"}
        assert [r["id"] for r in store.search()] == [incident["id"]]

    def test_updates_last_updated(self, store: IncidentStore) -> None:
        conn: sqlite3.Connection = store._conn  # pyright: ignore[reportPrivateUsage]
        conn.execute("UPDATE coordinator_state SET last_updated = '2000-01-01T00:00:00+00:00'")
        conn.commit()

        store.delete("whatever")

        assert store.last_updated() > "2000-01-01T00:00:00+00:00"


# ---------------------------------------------------------------------------
# Status updates
# ---------------------------------------------------------------------------


class TestUpdateStatus:
    def test_sets_status_and_outcome(self, store: IncidentStore) -> None:
        incident = _make_incident()
        store.append(incident)

        updated = store.update_status(
            incident["id"],
            "resolved",
            {"result": "Rollback fixed errors", "resolved_at": "2026-03-01T13:00:00+00:00", "notes": None},
        )

        assert updated is not None
        assert updated["status"] == "resolved"
        assert updated["outcome"] == {
            "result": "Rollback fixed errors",
            "resolved_at": "2026-03-01T13:00:00+00:00",
            "notes": None,
        }

    def test_status_only_keeps_outcome(self, store: IncidentStore) -> None:
        incident = _make_incident()
        store.append(incident)
        store.update_status(incident["id"], "resolved", {"result": "done", "resolved_at": None, "notes": None})

        updated = store.update_status(incident["id"], "monitoring")

        assert updated is not None
        assert updated["status"] == "monitoring"
        assert updated["outcome"] is not None

    def test_unknown_id_returns_none(self, store: IncidentStore) -> None:
        assert store.update_status("missing", "monitoring") is None

    def test_invalid_status_raises(self, store: IncidentStore) -> None:
        incident = _make_incident()
        store.append(incident)
        with pytest.raises(ValueError, match="Invalid incident status"):
            store.update_status(incident["id"], "closed")  # type: ignore[arg-type]
