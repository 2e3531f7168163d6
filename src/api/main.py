"""FastAPI backend for the debate coordinator.

Each coordination context is addressed by name under ``/agents/{name}``. Its
coordinator (and incident store) is created on first use and shared across
requests for the lifetime of the process.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Annotated, Any, Literal
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Path, Query, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer
from pydantic.alias_generators import to_camel

from src.agent.llm import is_llm_configured
from src.config import get_settings
from src.debate.coordinator import DebateCoordinator, build_coordinator
from src.memory.models import IncidentOutcome, IncidentRecord, IncidentStatus
from src.memory.store import get_connection
from src.observability.metrics import (
    APP_INFO,
    COMPONENT_HEALTHY,
    REQUEST_DURATION,
    REQUESTS_IN_PROGRESS,
    REQUESTS_TOTAL,
)

logger = logging.getLogger(__name__)

ContextName = Annotated[str, Path(pattern=r"^[A-Za-z0-9_.-]{1,64}$")]

# Last chunk of a chat stream that failed after its first chunk was sent.
STREAM_ERROR_MARKER = "\n\n[error] Recommendation failed; no decision was reached."


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class ChatRequest(BaseModel):
    """Request body for POST /agents/{name}/chat."""

    question: str = Field(..., min_length=1)
    session_id: str | None = None


class CamelModel(BaseModel):
    """snake_case attributes, camelCase JSON keys (either is accepted on input)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OutcomeBody(CamelModel):
    result: str
    resolved_at: str | None = None
    notes: str | None = None


class IncidentOut(CamelModel):
    """One incident record as served over HTTP."""

    id: str
    question: str
    timestamp: str
    status: IncidentStatus
    metrics_snapshot: dict[str, float] | None = None
    hypotheses: dict[str, str]
    decision: str
    reasoning: list[str]
    summary: str | None = None
    outcome: OutcomeBody | None = None

    @field_serializer("metrics_snapshot")
    def _camel_metric_names(self, snapshot: dict[str, float] | None) -> dict[str, float] | None:
        if snapshot is None:
            return None
        return {to_camel(key): value for key, value in snapshot.items()}

    @classmethod
    def wire(cls, record: IncidentRecord) -> dict[str, Any]:
        return cls.model_validate(record).model_dump(mode="json", by_alias=True)


class StatusUpdateBody(BaseModel):
    """Request body for POST /agents/{name}?action=update-status."""

    id: str = Field(..., min_length=1)
    status: Literal["open", "monitoring", "resolved"]
    outcome: OutcomeBody | None = None


class ComponentHealth(BaseModel):
    """Health status of a single dependency."""

    name: str
    status: str
    detail: str | None = None


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    status: str
    model: str
    components: list[ComponentHealth]


# ---------------------------------------------------------------------------
# Coordinator registry
# ---------------------------------------------------------------------------


class CoordinatorRegistry:
    """Lazily creates one coordinator per context name."""

    def __init__(self, factory: Callable[[str], DebateCoordinator]) -> None:
        self._factory = factory
        self._coordinators: dict[str, DebateCoordinator] = {}
        self._lock = asyncio.Lock()

    async def get(self, name: str) -> DebateCoordinator:
        async with self._lock:
            coordinator = self._coordinators.get(name)
            if coordinator is None:
                coordinator = self._factory(name)
                self._coordinators[name] = coordinator
            return coordinator

    async def aclose(self) -> None:
        """Let in-flight persistence finish, then close every store."""
        for coordinator in self._coordinators.values():
            await coordinator.drain()
            coordinator.store.close()
        self._coordinators.clear()


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Set up the coordinator registry at startup, drain it on shutdown."""
    settings = get_settings()
    APP_INFO.info({"version": "0.1.0", "model": settings.active_model})

    app.state.coordinators = CoordinatorRegistry(build_coordinator)
    logger.info("Debate coordinator ready (provider=%s)", settings.llm_provider)
    yield
    await app.state.coordinators.aclose()
    logger.info("Shutting down debate coordinator")


app = FastAPI(title="Incident Debate Coordinator", lifespan=lifespan)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus metrics in exposition format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.post("/agents/{name}/chat")
async def chat(name: ContextName, request: ChatRequest) -> StreamingResponse:
    """Answer a question, streaming the reply as plain text.

    Failures before the first chunk (e.g. the synthesis call erroring, or no
    API key configured) surface as a 500 with a generic detail. Failures
    mid-stream are logged and end the stream with ``STREAM_ERROR_MARKER``.
    """
    endpoint = "/agents/{name}/chat"
    session_id = request.session_id or uuid4().hex[:8]
    REQUESTS_IN_PROGRESS.labels(endpoint=endpoint).inc()
    start = time.monotonic()

    def _finish(status: str) -> None:
        REQUESTS_IN_PROGRESS.labels(endpoint=endpoint).dec()
        REQUEST_DURATION.labels(endpoint=endpoint).observe(time.monotonic() - start)
        REQUESTS_TOTAL.labels(endpoint=endpoint, status=status).inc()

    try:
        coordinator = await app.state.coordinators.get(name)
        stream = coordinator.respond(request.question, session_id=session_id)
        first = await anext(stream, None)
    except Exception as exc:
        _finish("error")
        logger.exception("Chat turn failed")
        raise HTTPException(status_code=500, detail="Chat turn failed") from exc

    async def body() -> AsyncIterator[str]:
        status = "success"
        try:
            if first is not None:
                yield first
            async for chunk in stream:
                yield chunk
        except Exception:
            status = "error"
            logger.exception("Chat stream failed mid-response")
            yield STREAM_ERROR_MARKER
        finally:
            await stream.aclose()
            _finish(status)

    return StreamingResponse(
        body(),
        media_type="text/plain; charset=utf-8",
        headers={"X-Session-Id": session_id},
    )


@app.get("/agents/{name}/incidents", response_model=list[IncidentOut])
async def list_incidents(
    name: ContextName,
    search_query: Annotated[str | None, Query(alias="searchQuery")] = None,
) -> list[IncidentRecord]:
    """List incidents newest first, optionally filtered by a free-text query.

    Records are served with camelCase keys (``metricsSnapshot``, ``errorRate``,
    ``resolvedAt``), matching the ``searchQuery`` parameter and the
    ``deletedId`` key of the delete action.
    """
    coordinator = await app.state.coordinators.get(name)
    return await coordinator.incidents(search_query)


async def _read_json(request: Request) -> Any:
    """Parse the request body as JSON, or None if it is missing or malformed."""
    try:
        return await request.json()
    except ValueError:
        return None


@app.post("/agents/{name}")
async def agent_action(name: ContextName, request: Request, action: str | None = None) -> JSONResponse:
    """Operator actions on a context, selected by ``?action=``.

    ``delete-incident`` takes ``{"id": ...}`` and answers ``{"success", "deletedId"}``.
    ``update-status`` takes ``{"id", "status", "outcome"}`` and answers with the
    updated record in the same camelCase shape as the incident listing.
    """
    if action == "delete-incident":
        return await _delete_incident(name, request)
    if action == "update-status":
        return await _update_status(name, request)
    return JSONResponse({"detail": "Not found"}, status_code=404)


async def _delete_incident(name: str, request: Request) -> JSONResponse:
    try:
        body = await _read_json(request)
        incident_id = body.get("id") if isinstance(body, dict) else None
        if not isinstance(incident_id, str) or not incident_id:
            return JSONResponse({"success": False, "error": "Missing incident id"}, status_code=400)

        coordinator = await app.state.coordinators.get(name)
        result = await coordinator.delete_incident(incident_id)
        REQUESTS_TOTAL.labels(endpoint="delete-incident", status="success").inc()
        return JSONResponse({"success": result["success"], "deletedId": result["deleted_id"]})
    except Exception:
        REQUESTS_TOTAL.labels(endpoint="delete-incident", status="error").inc()
        logger.exception("delete-incident request failed")
        return JSONResponse({"success": False, "error": "Internal error"}, status_code=500)


async def _update_status(name: str, request: Request) -> JSONResponse:
    try:
        update = StatusUpdateBody.model_validate(await _read_json(request))
    except ValidationError as exc:
        return JSONResponse(
            {"success": False, "error": "Invalid status update", "detail": exc.errors(include_url=False)},
            status_code=400,
        )

    try:
        outcome = (
            IncidentOutcome(
                result=update.outcome.result,
                resolved_at=update.outcome.resolved_at,
                notes=update.outcome.notes,
            )
            if update.outcome
            else None
        )
        coordinator = await app.state.coordinators.get(name)
        record = await coordinator.update_incident_status(update.id, update.status, outcome)
    except Exception:
        logger.exception("update-status request failed")
        return JSONResponse({"success": False, "error": "Internal error"}, status_code=500)

    if record is None:
        return JSONResponse({"success": False, "error": "Incident not found"}, status_code=404)
    return JSONResponse({"success": True, "incident": IncidentOut.wire(record)})


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Check the LLM configuration and the incident store."""
    settings = get_settings()
    components: list[ComponentHealth] = []

    # --- LLM provider ---
    if is_llm_configured(settings):
        components.append(ComponentHealth(name="llm", status="healthy"))
    else:
        components.append(
            ComponentHealth(
                name="llm",
                status="unhealthy",
                detail=f"No API key configured for provider '{settings.llm_provider}'",
            )
        )

    # --- Incident store ---
    try:
        conn = get_connection()
        try:
            conn.execute("SELECT 1").fetchone()
        finally:
            conn.close()
        components.append(ComponentHealth(name="memory_store", status="healthy"))
    except Exception as exc:
        components.append(ComponentHealth(name="memory_store", status="unhealthy", detail=str(exc)))

    # --- Update Prometheus gauges ---
    for comp in components:
        COMPONENT_HEALTHY.labels(component=comp.name).set(1.0 if comp.status == "healthy" else 0.0)

    # --- Overall status ---
    healthy_count = sum(1 for c in components if c.status == "healthy")
    if healthy_count == len(components):
        overall = "healthy"
    elif healthy_count == 0:
        overall = "unhealthy"
    else:
        overall = "degraded"

    return HealthResponse(status=overall, model=settings.active_model, components=components)
