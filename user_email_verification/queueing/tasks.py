# user_email_verification/queueing/tasks.py
"""
RQ job functions, one per escalation queue.

Each job receives a list of uids and returns a JSON-able summary. Per-uid
failures are reported in the summary (and in job.meta) instead of failing
the whole job, so one bad account never holds back the rest of its batch.
"""

from __future__ import annotations

import logging
from typing import Any

from rq import get_current_job

from user_email_verification.processors import BatchResult

log = logging.getLogger(__name__)


def _context():
    # Imported lazily: runtime imports this module through queueing.queues.
    from user_email_verification.runtime import get_context

    return get_context()


def _report(result: BatchResult) -> dict[str, Any]:
    summary = result.as_dict()
    job = get_current_job()
    if job is not None:
        job.meta["uev_result"] = summary
        job.save_meta()
    if result.failed:
        log.warning(
            "%s: %d ok, %d failed (%s)",
            result.action,
            len(result.succeeded),
            len(result.failed),
            ", ".join(str(u) for u in result.failed),
        )
    else:
        log.info("%s: %d ok", result.action, len(result.succeeded))
    return summary


def block_accounts(user_ids: list[int]) -> dict[str, Any]:
    return _report(_context().processors.block_accounts(user_ids))


def remind_accounts(user_ids: list[int]) -> dict[str, Any]:
    return _report(_context().processors.remind_accounts(user_ids))


def delete_accounts(user_ids: list[int]) -> dict[str, Any]:
    return _report(_context().processors.delete_accounts(user_ids))
