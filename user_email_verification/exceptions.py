# user_email_verification/exceptions.py
"""
Shared exception classes used across the package.

Verification attempt outcomes (expired, mismatch, already verified, ...) are
not exceptions; see user_email_verification.engine.Outcome. The classes here
cover persistence and delivery failures that callers must handle.
"""

from __future__ import annotations


class VerificationError(Exception):
    """Base class for all errors raised by this package."""


class DuplicateRecord(VerificationError):
    """
    Raised when a verification record already exists for a user id.

    Creation never overwrites an existing record; callers that may run twice
    for the same account should load first or catch this.
    """

    def __init__(self, user_id: int) -> None:
        super().__init__(f"Verification record already exists for uid={user_id}")
        self.user_id = user_id


class StoreUnavailable(VerificationError):
    """
    Raised when the verification store cannot be read or written.

    Examples:
        - database file missing or locked
        - disk I/O errors
        - schema not initialised
    """


class MailSendFailed(VerificationError):
    """
    Raised by mailers when a message could not be handed to the transport.

    Escalation treats this as non-fatal: reminder counters still advance.
    """


class TokenInvalid(VerificationError):
    """Raised when a verification link cannot be parsed into a token triple."""


__all__ = [
    "VerificationError",
    "DuplicateRecord",
    "StoreUnavailable",
    "MailSendFailed",
    "TokenInvalid",
]
