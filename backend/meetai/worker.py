# backend/meetai/worker.py
import os
import signal
import sys

from rq import Queue, Worker

from meetai.core.settings import get_settings
from meetai.jobs.queue import get_redis
from meetai.logging_utils import configure_logging


def main():
    configure_logging("worker", get_settings().LOG_LEVEL)
    redis_conn = get_redis()
    queues = [q.strip() for q in os.getenv("RQ_WORKER_QUEUES", get_settings().RQ_QUEUE).split(",")]
    worker = Worker([Queue(q, connection=redis_conn) for q in queues], connection=redis_conn)

    def handle_sig(signum, frame):
        worker.log.warning("Shutting down worker...")
        worker.request_stop(signum, frame)

    signal.signal(signal.SIGTERM, handle_sig)
    signal.signal(signal.SIGINT, handle_sig)

    worker.work(with_scheduler=True)


if __name__ == "__main__":
    sys.exit(main())
