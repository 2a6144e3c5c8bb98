# user_email_verification/queueing/worker.py
from __future__ import annotations

import importlib
import logging
import os

from rq import Queue
from rq import SimpleWorker as RQSimpleWorker
from rq import Worker as RQWorker

from user_email_verification.config import load_settings
from user_email_verification.queueing import tasks as _tasks  # noqa: F401
from user_email_verification.queueing.dlq import push_to_dlq
from user_email_verification.queueing.redis_conn import get_redis

log = logging.getLogger(__name__)


def _make_dlq_exception_handler(dlq_name: str):
    def _dlq_exception_handler(job, exc_type, exc_value, tb):
        try:
            # Never DLQ jobs already running on the DLQ queue
            if getattr(job, "origin", "") == dlq_name:
                return None
            if getattr(job, "retries_left", 0) in (0, None):
                push_to_dlq(job, dlq_name=dlq_name, err=exc_value)
        except Exception:  # noqa: BLE001
            log.exception("DLQ exception handler failed")
        # fall through to RQ's default handling (move to FailedJobRegistry)
        return True

    return _dlq_exception_handler


def queue_names_from_env_or_cfg() -> list[str]:
    raw = os.getenv("RQ_QUEUE", "")
    if raw.strip():
        return [q.strip() for q in raw.split(",") if q.strip()]
    return load_settings().queue.queue_names


def _select_worker_cls():
    """
    Windows: always SimpleWorker (forking Worker uses os.wait4 which doesn't exist on Windows).
    Non-Windows: honor RQ_WORKER_CLASS if provided; else use Worker.
    """
    if os.name == "nt":
        return RQSimpleWorker

    env_cls = os.getenv("RQ_WORKER_CLASS", "").strip()
    if env_cls:
        mod, name = env_cls.rsplit(".", 1)
        return getattr(importlib.import_module(mod), name)
    return RQWorker


def run(queue_names: list[str] | None = None, *, burst: bool = False) -> bool:
    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    cfg = load_settings()
    r = get_redis(cfg.queue.rq_redis_url)
    queue_names = queue_names or queue_names_from_env_or_cfg()
    queues = [Queue(name, connection=r) for name in queue_names]

    worker_cls = _select_worker_cls()
    log.info("Worker class: %s.%s", worker_cls.__module__, worker_cls.__name__)
    log.info("Queues: %s", ", ".join(queue_names))

    w = worker_cls(
        queues,
        connection=r,
        exception_handlers=[_make_dlq_exception_handler(cfg.queue.dlq_name)],
    )
    return w.work(burst=burst)


if __name__ == "__main__":
    run()
