# user_email_verification/engine.py
"""
Verification engine.

Builds signed verification links, classifies verification attempts and
answers the per-account questions (is verification needed, is a reminder
due) used by the escalation pipeline.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum

from user_email_verification import tokens
from user_email_verification.accounts import Account, AccountDirectory
from user_email_verification.clock import Clock
from user_email_verification.config import MailConfig
from user_email_verification.exceptions import MailSendFailed, TokenInvalid
from user_email_verification.mail import (
    Mailer,
    MailTemplate,
    VerifyBlockedMail,
    VerifyExtendedMail,
    VerifyMail,
    render_message,
)
from user_email_verification.policy import VerificationPolicy
from user_email_verification.store import VerificationRecord, VerificationStore

logger = logging.getLogger(__name__)

VERIFY_ROUTE = "/user/email-verify"
VERIFY_EXTENDED_ROUTE = "/user/email-verify-extended"

_LINK_PATH_RE = re.compile(
    r"^(?P<route>/user/email-verify(?:-extended)?)"
    r"/(?P<uid>\d{1,19})/(?P<ts>\d{1,19})/(?P<hash>[A-Za-z0-9_-]+)/?$"
)


class Outcome(str, Enum):
    EXPIRED = "expired"
    MISMATCH = "mismatch"
    ALREADY_VERIFIED = "already_verified"
    INVALID_SIGNATURE = "invalid_signature"
    VERIFIED_OK = "verified_ok"
    VERIFIED_BUT_BLOCKED = "verified_but_blocked"

    @property
    def notice(self) -> tuple[str, str]:
        """(level, message) shown to the person who clicked the link."""
        return _NOTICES[self]

    @property
    def is_verified(self) -> bool:
        return self in (
            Outcome.ALREADY_VERIFIED,
            Outcome.VERIFIED_OK,
            Outcome.VERIFIED_BUT_BLOCKED,
        )


_NOTICES: dict[Outcome, tuple[str, str]] = {
    Outcome.EXPIRED: (
        "error",
        "Your verification link has expired. Please request a new one.",
    ),
    Outcome.MISMATCH: (
        "error",
        "Your verification link was created for a different account. "
        "Please request a new one.",
    ),
    Outcome.ALREADY_VERIFIED: ("status", "Email is already verified."),
    Outcome.INVALID_SIGNATURE: (
        "error",
        "Your verification could not be processed. Please request a new link.",
    ),
    Outcome.VERIFIED_OK: ("status", "Thank you for verifying your email address."),
    Outcome.VERIFIED_BUT_BLOCKED: (
        "warning",
        "Your account was blocked before you were able to verify your email address. "
        "An administrator has been notified.",
    ),
}


@dataclass(frozen=True)
class Requester:
    """Who is following the link: an anonymous visitor or a logged-in account."""

    authenticated: bool = False
    user_id: int | None = None

    @classmethod
    def anonymous(cls) -> Requester:
        return cls()

    @classmethod
    def logged_in(cls, user_id: int) -> Requester:
        return cls(authenticated=True, user_id=int(user_id))


@dataclass(frozen=True)
class VerificationLink:
    user_id: int
    issued_at: int
    signature: str
    extended: bool = False

    @property
    def path(self) -> str:
        route = VERIFY_EXTENDED_ROUTE if self.extended else VERIFY_ROUTE
        return f"{route}/{self.user_id}/{self.issued_at}/{self.signature}"

    def url(self, base_url: str) -> str:
        return f"{base_url.rstrip('/')}{self.path}"

    @classmethod
    def from_path(cls, path: str) -> VerificationLink:
        """Parse a link path (or full URL); raises TokenInvalid on malformed input."""
        raw = (path or "").strip()
        if "://" in raw:
            raw = "/" + raw.split("://", 1)[1].split("/", 1)[-1]
        raw = raw.split("?", 1)[0]
        m = _LINK_PATH_RE.match(raw)
        if not m:
            raise TokenInvalid(f"Not a verification link: {path!r}")
        return cls(
            user_id=int(m.group("uid")),
            issued_at=int(m.group("ts")),
            signature=m.group("hash"),
            extended=m.group("route") == VERIFY_EXTENDED_ROUTE,
        )


class VerificationEngine:
    def __init__(
        self,
        *,
        store: VerificationStore,
        policy: VerificationPolicy,
        accounts: AccountDirectory,
        clock: Clock,
        hash_salt: str,
        mailer: Mailer | None = None,
        site: MailConfig | None = None,
    ) -> None:
        if not hash_salt:
            raise ValueError("hash_salt must be a non-empty secret")
        self.store = store
        self.policy = policy
        self.accounts = accounts
        self.clock = clock
        self._salt = hash_salt
        self.mailer = mailer
        self.site = site

    # ------------------------------------------------------------------
    # Links
    # ------------------------------------------------------------------

    def build_hmac(self, user_id: int, issued_at: int) -> str:
        return tokens.build_hmac(user_id, issued_at, self._salt)

    def _build_link(self, user_id: int, *, extended: bool) -> VerificationLink:
        issued_at = self.clock.now()
        return VerificationLink(
            user_id=int(user_id),
            issued_at=issued_at,
            signature=self.build_hmac(user_id, issued_at),
            extended=extended,
        )

    def build_verification_link(self, user_id: int) -> VerificationLink:
        return self._build_link(user_id, extended=False)

    def build_extended_verification_link(self, user_id: int) -> VerificationLink:
        return self._build_link(user_id, extended=True)

    # ------------------------------------------------------------------
    # Verification attempts
    # ------------------------------------------------------------------

    def process_attempt(
        self,
        requested_user_id: int,
        issued_at: int,
        signature: str,
        requester: Requester | None = None,
    ) -> Outcome:
        """
        Classify a click on a verification link.

        Checks run in a fixed order and the first match wins: expiry, record
        ownership, already verified, signature. Expiry comes first so an old
        link says nothing about whether a record exists. Only a successful
        attempt writes (mark_verified). StoreUnavailable propagates.
        """
        requester = requester or Requester.anonymous()
        uid = int(requested_user_id)
        now = self.clock.now()

        if now - int(issued_at) > self.policy.validate_interval:
            return Outcome.EXPIRED

        record = self.store.load(uid)
        if record is None or (requester.authenticated and requester.user_id != uid):
            return Outcome.MISMATCH

        if record.is_verified:
            return Outcome.ALREADY_VERIFIED

        account = self.accounts.load(uid)
        if account is None or not tokens.validate(
            uid,
            issued_at,
            signature,
            self._salt,
            now,
            self.policy.validate_interval,
        ):
            return Outcome.INVALID_SIGNATURE

        self.store.mark_verified(uid, now)
        if account.is_blocked:
            return Outcome.VERIFIED_BUT_BLOCKED
        return Outcome.VERIFIED_OK

    def verify(self, link: VerificationLink, requester: Requester | None = None) -> Outcome:
        """process_attempt() plus the administrator notice for blocked accounts."""
        outcome = self.process_attempt(link.user_id, link.issued_at, link.signature, requester)
        logger.info(
            "Verification attempt processed",
            extra={"uid": link.user_id, "outcome": outcome.value},
        )
        if outcome is Outcome.VERIFIED_BUT_BLOCKED:
            self.send_verify_blocked_mail(link.user_id)
        return outcome

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def load_verification(self, user_id: int) -> VerificationRecord | None:
        return self.store.load(user_id)

    def create_verification(self, account: Account, verify: bool = False) -> VerificationRecord:
        """
        Start tracking a newly provisioned account.

        Holders of a skip role, and accounts created as verified, start out
        verified.
        """
        verified_now = verify or self.policy.holds_skip_role(account.roles)
        return self.store.create(account.id, verified_now=verified_now, now=self.clock.now())

    def delete_verification(self, user_id: int) -> None:
        self.store.delete(user_id)

    def is_verification_needed(self, user_id: int) -> bool:
        record = self.store.load(user_id)
        if record is None or record.is_verified:
            return False
        return not self.store.has_skip_role(user_id, self.policy.skip_roles)

    def is_reminder_needed(self, user_id: int) -> bool:
        return self.store.is_reminder_needed(
            user_id,
            now=self.clock.now(),
            num_reminders=self.policy.num_reminders,
            reminder_interval=self.policy.reminder_interval,
        )

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def get_user_by_name_or_email(self, name_or_email: str) -> Account | None:
        """Active account by email address first, then by account name."""
        value = (name_or_email or "").strip()
        if not value:
            return None
        return self.accounts.find_active_by_mail(value) or self.accounts.find_active_by_name(
            value
        )

    def resend_verification(self, name_or_email: str) -> bool:
        """
        Mail a fresh verification link on request.

        Returns False when no active account matches or the account does not
        need verifying.
        """
        account = self.get_user_by_name_or_email(name_or_email)
        if account is None or not self.is_verification_needed(account.id):
            return False
        return self.send_verify_mail(account.id)

    # ------------------------------------------------------------------
    # Mail
    # ------------------------------------------------------------------

    def _site(self) -> MailConfig:
        if self.site is None:
            raise RuntimeError("VerificationEngine has no site/mail configuration")
        return self.site

    def _deliver(self, template: MailTemplate, to: str, langcode: str) -> bool:
        if self.mailer is None:
            raise RuntimeError("VerificationEngine has no mailer configured")
        message = render_message(template, self.policy, self._site())
        try:
            sent = self.mailer.send(template.key, to, langcode, message)
        except MailSendFailed as err:
            logger.warning("Mail %s to %s failed: %s", template.key, to, err)
            return False
        ok = bool(sent and sent.get("result"))
        if not ok:
            logger.warning("Mail %s to %s was not accepted", template.key, to)
        return ok

    def send_verify_mail(self, user_id: int) -> bool:
        account = self.accounts.load(user_id)
        if account is None:
            return False
        link = self.build_verification_link(account.id)
        template = VerifyMail(account=account, verify_url=link.url(self._site().site_url))
        return self._deliver(template, account.mail, account.preferred_langcode)

    def send_verify_extended_mail(self, account: Account) -> bool:
        link = self.build_extended_verification_link(account.id)
        template = VerifyExtendedMail(
            account=account,
            verify_extended_url=link.url(self._site().site_url),
        )
        return self._deliver(template, account.mail, account.preferred_langcode)

    def send_verify_blocked_mail(self, user_id: int) -> bool:
        """Tell the site administrator that a blocked account has verified."""
        account = self.accounts.load(user_id)
        if account is None:
            return False
        site = self._site()
        template = VerifyBlockedMail(
            account=account,
            edit_url=f"{site.site_url}/user/{account.id}/edit",
        )
        return self._deliver(template, site.site_mail, site.default_langcode)
