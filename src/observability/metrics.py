"""Prometheus metric definitions for debate coordinator self-instrumentation.

All metrics are module-level singletons registered with the default
prometheus_client registry.  Import them wherever instrumentation is needed.
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# ---------------------------------------------------------------------------
# Histogram bucket definitions
# ---------------------------------------------------------------------------

REQUEST_DURATION_BUCKETS = (0.5, 1.0, 2.0, 5.0, 10.0, 15.0, 20.0, 30.0, 60.0)
LLM_DURATION_BUCKETS = (0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 30.0)

# ---------------------------------------------------------------------------
# Request-level metrics
# ---------------------------------------------------------------------------

REQUEST_DURATION = Histogram(
    "debate_coordinator_request_duration_seconds",
    "End-to-end request duration in seconds",
    labelnames=["endpoint"],
    buckets=REQUEST_DURATION_BUCKETS,
)

REQUESTS_TOTAL = Counter(
    "debate_coordinator_requests_total",
    "Total number of requests",
    labelnames=["endpoint", "status"],
)

REQUESTS_IN_PROGRESS = Gauge(
    "debate_coordinator_requests_in_progress",
    "Number of requests currently being processed",
    labelnames=["endpoint"],
)

# ---------------------------------------------------------------------------
# Debate metrics
# ---------------------------------------------------------------------------

DEBATES_TOTAL = Counter(
    "debate_coordinator_debates_total",
    "Total number of debates by outcome (completed, aborted, failed)",
    labelnames=["outcome"],
)

PERSPECTIVE_CALLS_TOTAL = Counter(
    "debate_coordinator_perspective_calls_total",
    "Perspective provider calls by role and status (success, fallback)",
    labelnames=["role", "status"],
)

PERSPECTIVE_DURATION = Histogram(
    "debate_coordinator_perspective_duration_seconds",
    "Duration of individual perspective calls in seconds",
    labelnames=["role"],
    buckets=LLM_DURATION_BUCKETS,
)

EXTRACTION_MISSES_TOTAL = Counter(
    "debate_coordinator_extraction_misses_total",
    "Synthesis texts that did not match the expected template, by field",
    labelnames=["field"],
)

INCIDENT_PERSIST_TOTAL = Counter(
    "debate_coordinator_incident_persist_total",
    "Background incident persistence attempts by status",
    labelnames=["status"],
)

# ---------------------------------------------------------------------------
# LLM metrics (populated by callback handler)
# ---------------------------------------------------------------------------

LLM_CALLS_TOTAL = Counter(
    "debate_coordinator_llm_calls_total",
    "Completion calls by purpose (perspective:<role>, synthesis, summary, generic) and status",
    labelnames=["purpose", "status"],
)

LLM_CALL_DURATION = Histogram(
    "debate_coordinator_llm_call_duration_seconds",
    "Wall-clock duration of completion calls by purpose",
    labelnames=["purpose"],
    buckets=LLM_DURATION_BUCKETS,
)

LLM_TOKEN_USAGE = Counter(
    "debate_coordinator_llm_token_usage",
    "LLM token usage by purpose and type (prompt, completion)",
    labelnames=["purpose", "type"],
)

LLM_ESTIMATED_COST = Counter(
    "debate_coordinator_llm_estimated_cost_dollars",
    "Estimated cumulative LLM cost in USD",
)

# ---------------------------------------------------------------------------
# Health / info metrics
# ---------------------------------------------------------------------------

COMPONENT_HEALTHY = Gauge(
    "debate_coordinator_component_healthy",
    "Whether a dependency component is healthy (1=healthy, 0=unhealthy)",
    labelnames=["component"],
)

APP_INFO = Info(
    "debate_coordinator",
    "Debate coordinator build information",
)

# ---------------------------------------------------------------------------
# Cost pricing (USD per token), GPT-4o-mini as default
# ---------------------------------------------------------------------------

# Prices per token for cost estimation.  Keys are model name prefixes;
# the callback handler picks the best match.
COST_PER_TOKEN: dict[str, dict[str, float]] = {
    "gpt-4o-mini": {"prompt": 0.15 / 1_000_000, "completion": 0.60 / 1_000_000},
    "gpt-4o": {"prompt": 2.50 / 1_000_000, "completion": 10.00 / 1_000_000},
    "claude-3-5-haiku": {"prompt": 0.80 / 1_000_000, "completion": 4.00 / 1_000_000},
}
DEFAULT_COST_PER_TOKEN: dict[str, float] = {"prompt": 2.50 / 1_000_000, "completion": 10.00 / 1_000_000}
