"""
Time-bounded email address verification for user accounts.

Signed expiring verification links, per-account verification records and a
cron-driven reminder -> block -> delete escalation dispatched over RQ.
"""

from user_email_verification.engine import Outcome, Requester, VerificationEngine, VerificationLink
from user_email_verification.policy import VerificationPolicy
from user_email_verification.scheduler import EscalationScheduler
from user_email_verification.store import VerificationRecord, VerificationStore

__all__ = [
    "Outcome",
    "Requester",
    "VerificationEngine",
    "VerificationLink",
    "VerificationPolicy",
    "EscalationScheduler",
    "VerificationRecord",
    "VerificationStore",
]
