from __future__ import annotations

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from meetai.core.db import SessionLocal
from meetai.core.settings import get_settings
from meetai.jobs.queue import get_redis

router = APIRouter(tags=["health"])


def _check_db() -> dict:
    try:
        with SessionLocal() as session:
            session.execute(text("SELECT 1"))
        return {"status": "ok"}
    except SQLAlchemyError as exc:
        return {"status": "error", "detail": str(exc)}


def _check_redis() -> dict:
    if not get_settings().REDIS_URL:
        return {"status": "skipped"}
    try:
        get_redis().ping()
        return {"status": "ok"}
    except Exception as exc:  # noqa: BLE001
        return {"status": "error", "detail": str(exc)}


def healthz() -> dict:
    """
    Combined liveness/readiness payload.

    - DB: simple SELECT 1
    - Redis: PING (the processing queue lives there); skipped when REDIS_URL is empty
    """
    checks = {
        "db": _check_db(),
        "redis": _check_redis(),
    }
    overall = "ok" if all(c["status"] != "error" for c in checks.values()) else "error"
    return {"status": overall, "checks": checks}


@router.api_route("/healthz", methods=["GET", "HEAD"], include_in_schema=False)
def healthz_route() -> dict:
    """Primary health endpoint (local/dev/CI)."""
    return healthz()


@router.api_route("/api/healthz", methods=["GET", "HEAD"], include_in_schema=False)
def api_healthz() -> dict:
    """Alias for reverse proxies that expect /api/healthz."""
    return healthz()


@router.api_route("/v1/healthz", methods=["GET", "HEAD"], include_in_schema=False)
def v1_healthz() -> dict:
    """Alias for clients that expect versioned health URLs."""
    return healthz()
