# backend/meetai/jobs/queue.py
from __future__ import annotations

from functools import lru_cache

from redis import Redis
from rq import Queue

from meetai.core.settings import get_settings


@lru_cache(maxsize=1)
def get_redis() -> Redis:
    return Redis.from_url(get_settings().REDIS_URL, socket_connect_timeout=2)


def get_queue(name: str | None = None) -> Queue:
    qname = name or get_settings().RQ_QUEUE
    return Queue(qname, connection=get_redis())
