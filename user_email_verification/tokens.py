# user_email_verification/tokens.py
"""
Signed verification tokens.

A token is the triple (uid, timestamp, hash) embedded in a verification link.
The hash is an HMAC-SHA256 over "<timestamp><uid>" keyed with the server salt
followed by the uid, encoded as URL-safe base64 without padding. Nothing is
persisted; a token is valid while its signature matches and its age is within
the validity window.
"""

from __future__ import annotations

import base64
import hashlib
import hmac


def _hmac_base64(message: str, key: str) -> str:
    digest = hmac.new(key.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def build_hmac(user_id: int, issued_at: int, salt: str) -> str:
    """Signature for (user_id, issued_at). Deterministic for a given salt."""
    return _hmac_base64(f"{int(issued_at)}{int(user_id)}", f"{salt}{int(user_id)}")


def validate(
    user_id: int,
    issued_at: int,
    signature: str,
    salt: str,
    now: int,
    validate_interval: int,
) -> bool:
    """
    True iff the signature matches and 0 <= now - issued_at <= validate_interval.

    Never raises: malformed input fails validation.
    """
    try:
        uid = int(user_id)
        ts = int(issued_at)
        age = int(now) - ts
        window = int(validate_interval)
    except (TypeError, ValueError):
        return False

    if not isinstance(signature, str) or not signature:
        return False
    if age < 0 or age > window:
        return False

    expected = build_hmac(uid, ts, salt)
    try:
        return hmac.compare_digest(expected, signature)
    except TypeError:
        # non-ASCII str input
        return False
