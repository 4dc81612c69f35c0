from __future__ import annotations

import json
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from meetai.core.db import get_db
from meetai.core.errors import AppError, AuthError, ValidationError, app_error_response, error_response
from meetai.core.settings import get_settings
from meetai.deps import get_chat, get_enqueuer, get_llm, get_video
from meetai.jobs.meetings import MeetingJobEnqueuer
from meetai.logging_utils import get_logger
from meetai.metrics import WEBHOOK_EVENTS
from meetai.services.chat import ChatGateway
from meetai.services.llm import LLMService
from meetai.services.video import VideoGateway
from meetai.webhooks import EventKind, WebhookDispatcher

log = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["webhook"])


def _parse_payload(body: bytes) -> dict:
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError("Invalid JSON") from exc
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON")
    return payload


@router.post("/webhook")
async def provider_webhook(
    request: Request,
    x_signature: Optional[str] = Header(default=None, alias="x-signature"),
    x_api_key: Optional[str] = Header(default=None, alias="x-api-key"),
    db: Session = Depends(get_db),
    video: Callable[[], VideoGateway] = Depends(get_video),
    chat: Callable[[], ChatGateway] = Depends(get_chat),
    llm: Callable[[], LLMService] = Depends(get_llm),
    enqueue: MeetingJobEnqueuer = Depends(get_enqueuer),
) -> JSONResponse:
    """
    Stream video/chat webhook.

    Header and signature checks run before the body is parsed, so a rejected
    request never reaches the database. Every failure is mapped to a JSON
    error response here; nothing propagates past this handler.
    """
    kind = "unverified"
    try:
        if not x_signature or not x_api_key:
            raise ValidationError("Missing signature or API key")

        expected_key = get_settings().STREAM_API_KEY
        if expected_key and x_api_key != expected_key:
            raise AuthError("Invalid API key")

        body = await request.body()
        gateway = video()
        if not gateway.verify_webhook(body, x_signature):
            raise AuthError("Invalid signature")

        payload = _parse_payload(body)
        parsed = EventKind.parse(payload.get("type"))
        kind = parsed.value if parsed else "other"

        dispatcher = WebhookDispatcher(db, gateway, chat, llm, enqueue)
        response = JSONResponse(await dispatcher.dispatch(payload))
    except AppError as exc:
        await run_in_threadpool(db.rollback)
        log.warning(
            "webhook rejected",
            extra={"kind": kind, "status": exc.status_code, "reason": exc.message},
        )
        response = app_error_response(exc)
    except Exception:
        await run_in_threadpool(db.rollback)
        log.exception("webhook failed", extra={"kind": kind})
        response = error_response(500, "InternalServerError", "Webhook processing failed")

    WEBHOOK_EVENTS.labels(kind=kind, status=str(response.status_code)).inc()
    return response
