# user_email_verification/processors.py
"""
Batch processors for the three escalation queues.

Each queue item is a list of uids. Every uid is handled on its own: a failure
is logged and recorded, and the rest of the batch still runs.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from user_email_verification.engine import VerificationEngine

log = logging.getLogger(__name__)


@dataclass
class BatchResult:
    action: str
    succeeded: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def as_dict(self) -> dict[str, object]:
        return {
            "action": self.action,
            "succeeded": list(self.succeeded),
            "failed": {str(k): v for k, v in self.failed.items()},
        }


class BatchProcessors:
    def __init__(
        self,
        engine: VerificationEngine,
        *,
        cancel_method: str = "user_cancel_block",
    ) -> None:
        self.engine = engine
        self.cancel_method = cancel_method

    # ------------------------------------------------------------------
    # Per-account actions
    # ------------------------------------------------------------------

    def block_account(self, user_id: int) -> bool:
        """
        Block an active account; with the extended period enabled, mail it the
        extended verification link. Returns False when nothing was done.
        """
        accounts = self.engine.accounts
        account = accounts.load(user_id)
        if account is None or not account.is_active:
            return False

        accounts.block(account.id)
        log.info("Blocked unverified account", extra={"uid": account.id})

        if self.engine.policy.extended_period_enabled:
            self.engine.send_verify_extended_mail(account)
        return True

    def remind_account(self, user_id: int) -> bool:
        """
        Send a reminder if one is still due, then advance the counter.

        The counter moves even when delivery fails so that unreachable
        addresses still reach the block stage.
        """
        if not self.engine.is_reminder_needed(user_id):
            return False

        try:
            sent = self.engine.send_verify_mail(user_id)
        except Exception:  # noqa: BLE001
            log.exception("Reminder mail failed", extra={"uid": int(user_id)})
        else:
            if not sent:
                log.warning("Reminder mail not delivered", extra={"uid": int(user_id)})
        self.engine.store.increment_reminder(user_id, self.engine.clock.now())
        return True

    def delete_account(self, user_id: int) -> bool:
        """Notify the account and cancel it through the host application."""
        accounts = self.engine.accounts
        account = accounts.load(user_id)
        if account is None:
            return False

        accounts.notify_cancelled(account)
        accounts.cancel(account.id, self.cancel_method)
        # the record goes with the account, whether or not cancel removed it
        self.engine.delete_verification(account.id)
        log.info(
            "Cancelled unverified account",
            extra={"uid": account.id, "cancel_method": self.cancel_method},
        )
        return True

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def process_batch(self, action: Callable[[int], bool], user_ids: Iterable[int]) -> BatchResult:
        result = BatchResult(action=getattr(action, "__name__", str(action)))
        for uid in user_ids:
            try:
                action(int(uid))
            except Exception as exc:  # noqa: BLE001
                log.exception("%s failed for uid=%s", result.action, uid)
                result.failed[int(uid)] = f"{type(exc).__name__}: {exc}"
            else:
                result.succeeded.append(int(uid))
        return result

    def block_accounts(self, user_ids: Iterable[int]) -> BatchResult:
        return self.process_batch(self.block_account, user_ids)

    def remind_accounts(self, user_ids: Iterable[int]) -> BatchResult:
        return self.process_batch(self.remind_account, user_ids)

    def delete_accounts(self, user_ids: Iterable[int]) -> BatchResult:
        return self.process_batch(self.delete_account, user_ids)
