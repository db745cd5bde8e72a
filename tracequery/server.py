"""tracequery API Server: natural-language trace questions over HTTP.

Usage:
    uvicorn tracequery.server:app --host 0.0.0.0 --port 8080
    # or
    tracequery serve --port 8080

Curl:
    curl http://localhost:8080/v1/ask -d '{"question": "Find errors in payment processing"}'
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from tracequery import __version__
from tracequery.env_config import EnvConfig, get_env_config
from tracequery.errors import (
    BackendUnreachable,
    ConfigurationError,
    ModelNotInstalled,
    ParseError,
    ProtocolError,
    RequestInProgressError,
    RequestTimeoutError,
    TraceQueryError,
)
from tracequery.gateway import ModelGateway
from tracequery.models import HistoryEntry
from tracequery.orchestrator import QueryOrchestrator
from tracequery.storage import JsonFileStore, QueryHistory, SettingsStore

logger = logging.getLogger("tracequery.server")

# Most specific first: RequestInProgressError is a ConfigurationError,
# ModelNotInstalled is a ProtocolError.
ERROR_STATUS: list[tuple[type[TraceQueryError], int]] = [
    (RequestInProgressError, 409),
    (ConfigurationError, 400),
    (ParseError, 422),
    (ModelNotInstalled, 502),
    (ProtocolError, 502),
    (BackendUnreachable, 503),
    (RequestTimeoutError, 504),
]


# ============================================================
# Request / Response models
# ============================================================

class AskRequest(BaseModel):
    question: str = ""
    model: str | None = None
    api_key: str | None = None
    base_url: str | None = None
    local_model: str | None = None


class AskResponse(BaseModel):
    model: str
    query: dict[str, Any]
    filters: dict[str, str] = Field(default_factory=dict)
    search_request: dict[str, Any] | None = None


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = ""
    model: str = ""


def status_for(error: TraceQueryError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


# ============================================================
# App factory
# ============================================================

def create_app(orchestrator: QueryOrchestrator | None = None, env: EnvConfig | None = None) -> FastAPI:
    """Build the API. One orchestrator serves the app, so concurrent asks get 409."""
    env = env or get_env_config()
    store = JsonFileStore(env.store_path)
    settings = SettingsStore(store)
    if orchestrator is None:
        orchestrator = QueryOrchestrator(
            gateway=ModelGateway(timeout=env.timeout),
            history=QueryHistory(store),
            lookback=env.lookback,
            limit=env.limit,
        )

    api = FastAPI(title="tracequery", version=__version__)
    api.state.env = env
    api.state.settings = settings
    api.state.orchestrator = orchestrator

    @api.exception_handler(TraceQueryError)
    async def _trace_query_error(request: Request, exc: TraceQueryError) -> JSONResponse:
        return JSONResponse(
            status_code=status_for(exc),
            content={"error": {"kind": exc.kind, "message": str(exc)}},
        )

    @api.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(version=__version__, model=env.model)

    @api.post("/v1/ask", response_model=AskResponse)
    async def ask(body: AskRequest) -> AskResponse:
        config = env.client_config(
            model=body.model,
            api_key=body.api_key,
            base_url=body.base_url,
            local_model=body.local_model,
            settings=settings,
        )
        result = await orchestrator.run(body.question, config)
        return AskResponse(
            model=config.model.value,
            query=result.query.model_dump(mode="json", by_alias=True),
            filters=result.filters,
            search_request=result.search_request,
        )

    @api.get("/v1/history", response_model=list[HistoryEntry])
    async def history() -> list[HistoryEntry]:
        if orchestrator.history is None:
            return []
        return orchestrator.history.entries()

    return api


app = create_app()
