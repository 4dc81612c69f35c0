from __future__ import annotations

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError

from meetai.core.db import init_db
from meetai.core.errors import (
    AppError,
    app_error_handler,
    generic_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from meetai.core.settings import get_settings
from meetai.logging_utils import bind_request_context, configure_logging, get_logger
from meetai.metrics import CONTENT_TYPE_LATEST, render_all_metrics_prometheus, track_http_request
from meetai.routers import agents, health, meetings, voice_agent, webhook

# Configure structured logging for the API once at startup
configure_logging("api", get_settings().LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(title="Meet Assist", lifespan=lifespan)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


# ---------------------------------------------------------------------------
# Observability middleware (request ID + HTTP metrics)
# ---------------------------------------------------------------------------


@app.middleware("http")
async def observability_middleware(request: Request, call_next):
    """
    Attach a request_id to logs and track basic HTTP metrics
    (path/method/status + latency) for every request.
    """
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    bind_request_context(request_id)

    status_holder: dict[str, int] = {"status": 500}
    path = request.url.path
    method = request.method

    with track_http_request(path, method, lambda: status_holder["status"]):
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "unhandled error in request",
                extra={"path": path, "method": method, "request_id": request_id},
            )
            raise
        status_holder["status"] = response.status_code

    response.headers["x-request-id"] = request_id
    return response


# ---------------------------------------------------------------------------
# Metrics endpoint
# ---------------------------------------------------------------------------


@app.get("/metrics-prom", include_in_schema=False)
def metrics_prometheus() -> Response:
    """Prometheus text-format metrics for scraping and debugging."""
    return Response(render_all_metrics_prometheus(), media_type=CONTENT_TYPE_LATEST)


@app.get("/", include_in_schema=False)
def root() -> dict[str, str]:
    """Simple root endpoint for quick manual checks."""
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# API routers
# ---------------------------------------------------------------------------

# Routers declare their own prefixes (e.g. /v1/meetings, /api/webhook).
app.include_router(health.router)
app.include_router(webhook.router)
app.include_router(voice_agent.router)
app.include_router(meetings.router)
app.include_router(agents.router)
