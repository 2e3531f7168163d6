"""TypedDict models for incident memory records."""

from typing import Literal, NotRequired, TypedDict

IncidentStatus = Literal["open", "monitoring", "resolved"]

INCIDENT_STATUSES: tuple[str, ...] = ("open", "monitoring", "resolved")


class Hypotheses(TypedDict):
    reliability: str
    cost: str
    ux: str


class MetricsSnapshot(TypedDict):
    error_rate: NotRequired[float]  # percent
    latency: NotRequired[float]  # milliseconds
    throughput: NotRequired[float]  # requests per second


class IncidentOutcome(TypedDict):
    result: str
    resolved_at: str | None  # ISO 8601
    notes: str | None


class IncidentRecord(TypedDict):
    id: str
    question: str
    timestamp: str  # ISO 8601, newest first when listed
    status: IncidentStatus
    metrics_snapshot: MetricsSnapshot | None
    hypotheses: Hypotheses
    decision: str
    reasoning: list[str]  # at most 3 entries
    summary: str | None
    outcome: IncidentOutcome | None


class DeleteResult(TypedDict):
    success: bool
    deleted_id: str
