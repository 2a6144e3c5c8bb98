# user_email_verification/scheduler.py
"""
Escalation scheduler.

One tick selects three cohorts of unverified accounts and enqueues them in
fixed-size batches:

  block   reminders >= num_reminders, idle >= reminder_interval
  remind  reminders <  num_reminders, idle >= reminder_interval
  delete  idle >= extended_validate_interval (only with the extended period)

A tick only reads the store. Running it twice before any batch is processed
enqueues the same batches again; the processors re-check each account before
acting.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from user_email_verification.clock import Clock
from user_email_verification.config import QueueConfig
from user_email_verification.exceptions import StoreUnavailable
from user_email_verification.policy import VerificationPolicy
from user_email_verification.store import Cohort, CohortCriteria, VerificationStore

log = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10


class WorkQueue(Protocol):
    def enqueue(self, queue_name: str, user_ids: list[int]) -> None: ...


def chunked(items: Sequence[int], size: int) -> Iterator[list[int]]:
    """Split items into lists of at most `size`, keeping order."""
    if size < 1:
        raise ValueError("batch size must be >= 1")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


@dataclass
class CohortResult:
    cohort: Cohort
    queue_name: str
    user_ids: list[int] = field(default_factory=list)
    batches: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class TickReport:
    now: int
    reminder_interval: int
    cohorts: list[CohortResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(c.ok for c in self.cohorts)

    def get(self, cohort: Cohort) -> CohortResult | None:
        for c in self.cohorts:
            if c.cohort is cohort:
                return c
        return None

    def as_dict(self) -> dict[str, object]:
        return {
            "now": self.now,
            "reminder_interval": self.reminder_interval,
            "cohorts": {
                c.cohort.value: {
                    "queue": c.queue_name,
                    "users": len(c.user_ids),
                    "batches": c.batches,
                    "error": c.error,
                }
                for c in self.cohorts
            },
        }


@dataclass(frozen=True)
class QueueNames:
    block: str = "user_email_verification_block_account"
    remind: str = "user_email_verification_reminders"
    delete: str = "user_email_verification_delete_account"

    @classmethod
    def from_config(cls, cfg: QueueConfig) -> QueueNames:
        return cls(
            block=cfg.block_queue_name,
            remind=cfg.remind_queue_name,
            delete=cfg.delete_queue_name,
        )

    def for_cohort(self, cohort: Cohort) -> str:
        return {
            Cohort.BLOCK: self.block,
            Cohort.REMIND: self.remind,
            Cohort.DELETE: self.delete,
        }[cohort]


class EscalationScheduler:
    def __init__(
        self,
        *,
        store: VerificationStore,
        policy: VerificationPolicy,
        queue: WorkQueue,
        clock: Clock,
        queue_names: QueueNames | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.store = store
        self.policy = policy
        self.queue = queue
        self.clock = clock
        self.queue_names = queue_names or QueueNames()
        self.batch_size = batch_size

    def criteria_for(self, cohort: Cohort, now: int) -> CohortCriteria:
        interval = (
            self.policy.extended_validate_interval
            if cohort is Cohort.DELETE
            else self.policy.reminder_interval
        )
        return CohortCriteria(
            cohort=cohort,
            interval=interval,
            now=now,
            num_reminders=self.policy.num_reminders,
            skip_roles=self.policy.skip_roles,
        )

    def cohorts(self) -> list[Cohort]:
        out = [Cohort.BLOCK, Cohort.REMIND]
        if self.policy.extended_period_enabled:
            out.append(Cohort.DELETE)
        return out

    def tick(self) -> TickReport:
        now = self.clock.now()
        report = TickReport(now=now, reminder_interval=self.policy.reminder_interval)
        for cohort in self.cohorts():
            report.cohorts.append(self._run_cohort(cohort, now))
        return report

    def _run_cohort(self, cohort: Cohort, now: int) -> CohortResult:
        queue_name = self.queue_names.for_cohort(cohort)
        result = CohortResult(cohort=cohort, queue_name=queue_name)
        try:
            result.user_ids = self.store.query_cohort(self.criteria_for(cohort, now))
        except StoreUnavailable as err:
            # Skip this cohort; the next tick selects it again.
            log.warning("Cohort %s skipped: %s", cohort.value, err)
            result.error = str(err)
            return result

        for batch in chunked(result.user_ids, self.batch_size):
            try:
                self.queue.enqueue(queue_name, batch)
            except Exception as err:  # noqa: BLE001
                # Remaining batches are left for the next tick.
                log.exception("Cohort %s: enqueue on %s failed", cohort.value, queue_name)
                result.error = f"enqueue failed: {type(err).__name__}: {err}"
                return result
            result.batches += 1

        log.info(
            "Cohort %s: %d users in %d batches -> %s",
            cohort.value,
            len(result.user_ids),
            result.batches,
            queue_name,
        )
        return result
