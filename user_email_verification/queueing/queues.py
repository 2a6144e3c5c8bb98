# user_email_verification/queueing/queues.py
from __future__ import annotations

import logging
from collections.abc import Callable

from redis import Redis
from rq import Queue, Retry

from user_email_verification.config import QueueConfig
from user_email_verification.queueing import tasks
from user_email_verification.queueing.redis_conn import get_redis

log = logging.getLogger(__name__)


class RqWorkQueue:
    """
    WorkQueue backed by RQ: one RQ queue per escalation queue name, each item
    a job running the matching batch task with the list of uids.
    """

    def __init__(
        self,
        connection: Redis,
        *,
        task_by_queue: dict[str, Callable[[list[int]], dict]],
        job_timeout: int = 300,
        retry_schedule: list[int] | None = None,
    ) -> None:
        self.connection = connection
        self.task_by_queue = dict(task_by_queue)
        self.job_timeout = job_timeout
        self.retry_schedule = list(retry_schedule or [])

    @classmethod
    def from_config(cls, cfg: QueueConfig, connection: Redis | None = None) -> RqWorkQueue:
        return cls(
            connection if connection is not None else get_redis(cfg.rq_redis_url),
            task_by_queue={
                cfg.block_queue_name: tasks.block_accounts,
                cfg.remind_queue_name: tasks.remind_accounts,
                cfg.delete_queue_name: tasks.delete_accounts,
            },
            job_timeout=cfg.job_timeout,
            retry_schedule=cfg.retry_schedule,
        )

    def _retry(self) -> Retry | None:
        """
        RQ retry policy from RETRY_SCHEDULE.
        Number of retries = len(schedule). Backoffs follow the list values.
        """
        if not self.retry_schedule:
            return None
        return Retry(max=len(self.retry_schedule), interval=self.retry_schedule)

    def get_queue(self, queue_name: str) -> Queue:
        return Queue(queue_name, connection=self.connection)

    def enqueue(self, queue_name: str, user_ids: list[int]) -> None:
        try:
            func = self.task_by_queue[queue_name]
        except KeyError:
            raise ValueError(f"Unknown escalation queue: {queue_name!r}") from None

        job = self.get_queue(queue_name).enqueue(
            func,
            [int(u) for u in user_ids],
            job_timeout=self.job_timeout,
            retry=self._retry(),
        )
        log.debug("Enqueued %s uids on %s as job %s", len(user_ids), queue_name, job.id)
