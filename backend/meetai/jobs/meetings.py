"""RQ job wiring for meeting processing."""

from __future__ import annotations

from typing import Any, Protocol

from rq import Queue
from rq.job import Job

from meetai.jobs.queue import get_queue
from meetai.logging_utils import get_logger
from meetai.metrics import JOBS_ENQUEUED

log = get_logger(__name__)

PROCESS_MEETING = "meetai.jobs.process_meeting.process_meeting"


class MeetingJobEnqueuer(Protocol):
    def __call__(self, meeting_id: str, transcript_url: str) -> Any: ...


def enqueue_with_metrics(queue: Queue, func: str, **kwargs: Any) -> Job:
    """Enqueue an RQ job and count it; metrics never break the request path."""
    job: Job = queue.enqueue(func, **kwargs)
    try:
        JOBS_ENQUEUED.labels(queue=queue.name, job_name=func.rsplit(".", 1)[-1]).inc()
    except Exception:
        log.exception(
            "Failed to increment jobs_enqueued_total",
            extra={"queue": queue.name, "job_id": getattr(job, "id", None)},
        )
    return job


def enqueue_process_meeting(meeting_id: str, transcript_url: str) -> Job:
    """Queue the "meeting processing" job: transcript -> summary -> completed."""
    job = enqueue_with_metrics(
        get_queue(),
        PROCESS_MEETING,
        kwargs={"meeting_id": meeting_id, "transcript_url": transcript_url},
        description=f"process_meeting[{meeting_id}]",
        job_timeout="30m",
        failure_ttl=7 * 24 * 3600,
    )
    log.info(
        "process_meeting enqueued",
        extra={"meeting_id": meeting_id, "rq_job_id": job.id},
    )
    return job
