# user_email_verification/policy.py
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from user_email_verification.config import AppConfig, VerificationConfig


@dataclass(frozen=True)
class VerificationPolicy:
    """
    Read-only snapshot of the verification settings.

    Shared by the engine and the scheduler so that link validity, reminder
    eligibility and cohort selection are all computed from the same numbers.
    """

    validate_interval: int
    num_reminders: int
    extended_validate_interval: int = 0
    skip_roles: frozenset[str] = frozenset()
    extended_period_enabled: bool = False
    mail_subject: str = ""
    mail_body: str = ""
    extended_mail_subject: str = ""
    extended_mail_body: str = ""

    @classmethod
    def from_config(cls, cfg: AppConfig | VerificationConfig) -> VerificationPolicy:
        v = cfg.verification if isinstance(cfg, AppConfig) else cfg
        return cls(
            validate_interval=int(v.validate_interval),
            num_reminders=int(v.num_reminders),
            extended_validate_interval=int(v.extended_validate_interval),
            skip_roles=frozenset(v.skip_roles),
            extended_period_enabled=bool(v.extended_enable),
            mail_subject=v.mail_subject.strip(),
            mail_body=v.mail_body.strip(),
            extended_mail_subject=v.extended_mail_subject.strip(),
            extended_mail_body=v.extended_mail_body.strip(),
        )

    @property
    def reminder_interval(self) -> int:
        """ceil(validate_interval / (num_reminders + 1)), in integer arithmetic."""
        slots = self.num_reminders + 1
        return -(-self.validate_interval // slots)

    def holds_skip_role(self, roles: Iterable[str]) -> bool:
        if not self.skip_roles:
            return False
        return not self.skip_roles.isdisjoint(roles)
