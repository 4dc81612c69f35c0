from __future__ import annotations

import json
import time
from typing import Any, Optional

import httpx
from rq import get_current_job
from sqlalchemy import select
from sqlalchemy.orm import Session

from meetai.core.db import SessionLocal
from meetai.logging_utils import bind_job_context, get_logger
from meetai.metrics import JOB_DURATION, JOBS_COMPLETED, JOBS_FAILED
from meetai.models import Agent, Meeting, MeetingStatus
from meetai.services.llm import get_llm_service

log = get_logger(__name__)

JOB_NAME = "process_meeting"
UNKNOWN_SPEAKER = "Participant"
EMPTY_SUMMARY = "No transcript was captured for this meeting."

SUMMARIZER_PROMPT = """
You are an expert summarizer. You write readable, concise, simple content.
You are given a transcript of a meeting and you need to summarize it.

Use the following markdown structure for every output:

### Overview
A detailed, engaging summary of the session's content. Focus on major features,
user workflows and any key takeaways. Write in a narrative style, using full
sentences.

### Notes
Break down key content into thematic sections with timestamp ranges. Each
section summarizes key points, actions or demos in bullet format.

Example:
#### Section Name
- Main point or demo shown here
- Another key insight or interaction
- Follow-up tool or explanation provided
""".strip()


def fetch_transcript(url: str) -> list[dict[str, Any]]:
    """Download a JSON Lines transcript; blank or non-object lines are skipped."""
    with httpx.Client(timeout=30) as client:
        resp = client.get(url)
        resp.raise_for_status()
    items: list[dict[str, Any]] = []
    for line in resp.text.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            item = json.loads(line)
        except json.JSONDecodeError:
            log.warning("skipping malformed transcript line", extra={"url": url})
            continue
        if isinstance(item, dict):
            items.append(item)
    return items


def attach_speakers(db: Session, items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    speaker_ids = {str(i.get("speaker_id")) for i in items if i.get("speaker_id")}
    names: dict[str, str] = {}
    if speaker_ids:
        rows = db.execute(select(Agent.id, Agent.name).where(Agent.id.in_(speaker_ids))).all()
        names = {row.id: row.name for row in rows}

    out = []
    for item in items:
        speaker_id = str(item.get("speaker_id") or "")
        out.append({**item, "speaker": {"name": names.get(speaker_id, UNKNOWN_SPEAKER)}})
    return out


def summarize_transcript(items: list[dict[str, Any]]) -> str:
    if not items:
        return EMPTY_SUMMARY
    llm = get_llm_service()
    summary = llm.complete(
        [
            {"role": "system", "content": SUMMARIZER_PROMPT},
            {"role": "user", "content": "Summarize the following transcript: " + json.dumps(items)},
        ]
    )
    return summary or EMPTY_SUMMARY


def process_meeting(meeting_id: str, transcript_url: Optional[str] = None) -> None:
    """
    Meeting processing job (enqueued when the transcript is ready).

      - Loads the Meeting; missing meetings are logged and skipped
      - Fetches the JSONL transcript and resolves speaker names
      - Summarizes through the LLM service
      - Stores the summary and marks the meeting completed

    Failures roll back, count as failed and re-raise so RQ records them.
    """
    job = get_current_job()
    job_id = job.id if job is not None else None
    bind_job_context(job_id)
    log_extra: dict[str, Any] = {"meeting_id": meeting_id, "job_id": job_id}
    log.info("process_meeting: job started", extra=log_extra)

    start = time.perf_counter()
    db: Session | None = None
    try:
        db = SessionLocal()

        meeting = db.get(Meeting, meeting_id)
        if meeting is None:
            log.error("process_meeting: meeting not found", extra=log_extra)
            return

        url = transcript_url or meeting.transcript_url
        items = fetch_transcript(url) if url else []
        log.info("process_meeting: transcript loaded", extra={**log_extra, "items": len(items)})

        with_speakers = attach_speakers(db, items)
        summary = summarize_transcript(with_speakers)

        meeting.summary = summary
        meeting.status = MeetingStatus.completed.value
        db.commit()

        JOBS_COMPLETED.labels(job_name=JOB_NAME).inc()
        log.info(
            "process_meeting: finished",
            extra={**log_extra, "summary_preview": summary[:80]},
        )
    except Exception:
        log.exception("process_meeting: error", extra=log_extra)
        JOBS_FAILED.labels(job_name=JOB_NAME).inc()
        if db is not None:
            db.rollback()
        # Re-raise so callers / RQ can see failure
        raise
    finally:
        JOB_DURATION.labels(job_name=JOB_NAME).observe(time.perf_counter() - start)
        if db is not None:
            db.close()
        bind_job_context(None)
