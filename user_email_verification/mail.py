# user_email_verification/mail.py
"""
Verification emails.

Three messages exist:

  verify           reminder with the verification link (configurable text)
  verify_extended  sent on blocking when the extended period is enabled
                   (configurable text)
  verify_blocked   administrator notice that a blocked account verified its
                   address (fixed text)

Configurable texts are trusted templates with [user:*] / [site:*] tokens.
SesMailer delivers rendered messages through AWS SES.

Configuration (env vars):
  SES_FROM_EMAIL      - Sender address
  SES_FROM_NAME       - Sender display name
  SES_AWS_REGION      - AWS region for SES (default: us-east-1)
  AWS_ACCESS_KEY_ID   - (standard boto3 credential)
  AWS_SECRET_ACCESS_KEY
"""

from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass, field
from typing import Any, ClassVar, Protocol

from botocore.exceptions import BotoCoreError, ClientError

from user_email_verification.accounts import Account
from user_email_verification.config import MailConfig
from user_email_verification.policy import VerificationPolicy

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\[([a-z_]+):([a-z0-9_-]+)\]")


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VerifyMail:
    key: ClassVar[str] = "verify"

    account: Account
    verify_url: str


@dataclass(frozen=True)
class VerifyExtendedMail:
    key: ClassVar[str] = "verify_extended"

    account: Account
    verify_extended_url: str


@dataclass(frozen=True)
class VerifyBlockedMail:
    key: ClassVar[str] = "verify_blocked"

    account: Account
    edit_url: str


MailTemplate = VerifyMail | VerifyExtendedMail | VerifyBlockedMail


@dataclass(frozen=True)
class RenderedMessage:
    subject: str
    body: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n\n".join(self.body)


def replace_tokens(text: str, values: dict[str, str]) -> str:
    """
    Substitute "[group:name]" tokens from values (keyed "group:name").

    Unknown tokens are left untouched.
    """

    def _sub(m: re.Match[str]) -> str:
        return values.get(f"{m.group(1)}:{m.group(2)}", m.group(0))

    return _TOKEN_RE.sub(_sub, text)


def _token_values(account: Account, site: MailConfig, **links: str) -> dict[str, str]:
    values = {
        "user:uid": str(account.id),
        "user:name": account.name,
        "user:mail": account.mail,
        "site:name": site.site_name,
        "site:url": site.site_url,
        "site:mail": site.site_mail,
    }
    for name, url in links.items():
        values[f"user:{name.replace('_', '-')}"] = url
    return values


def render_message(
    template: MailTemplate,
    policy: VerificationPolicy,
    site: MailConfig,
) -> RenderedMessage:
    if isinstance(template, VerifyMail):
        values = _token_values(template.account, site, verify_email=template.verify_url)
        return RenderedMessage(
            subject=replace_tokens(policy.mail_subject, values),
            body=[replace_tokens(policy.mail_body, values)],
        )

    if isinstance(template, VerifyExtendedMail):
        values = _token_values(
            template.account,
            site,
            verify_email_extended=template.verify_extended_url,
        )
        return RenderedMessage(
            subject=replace_tokens(policy.extended_mail_subject, values),
            body=[replace_tokens(policy.extended_mail_body, values)],
        )

    if isinstance(template, VerifyBlockedMail):
        account = template.account
        return RenderedMessage(
            subject="A blocked account verified Email.",
            body=[
                f"Blocked account with name: {account.name}, ID: {account.id} "
                f"verified own Email: {account.mail}",
                template.edit_url,
                "If the account is not blocked for other reason, please unblock the account.",
            ],
        )

    raise TypeError(f"Unknown mail template: {type(template).__name__}")


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


class Mailer(Protocol):
    def send(
        self,
        key: str,
        to: str,
        langcode: str,
        message: RenderedMessage,
    ) -> dict[str, Any]:
        """Deliver a rendered message. Returns {"result": bool}."""
        ...


def _html_body(message: RenderedMessage) -> str:
    paragraphs = "\n".join(
        f"<p>{html.escape(part).replace(chr(10), '<br>')}</p>" for part in message.body
    )
    return f"""\
<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
</head>
<body>
{paragraphs}
</body>
</html>"""


class SesMailer:
    """Mailer backed by boto3's SES client (created lazily)."""

    def __init__(self, cfg: MailConfig, client: Any = None) -> None:
        self._cfg = cfg
        self._client = client

    def _get_ses_client(self) -> Any:
        if self._client is None:
            import boto3

            self._client = boto3.client("ses", region_name=self._cfg.aws_region)
        return self._client

    def send(
        self,
        key: str,
        to: str,
        langcode: str,
        message: RenderedMessage,
    ) -> dict[str, Any]:
        from_addr = f"{self._cfg.from_name} <{self._cfg.from_email}>"
        try:
            response = self._get_ses_client().send_email(
                Source=from_addr,
                Destination={"ToAddresses": [to]},
                Message={
                    "Subject": {"Data": message.subject, "Charset": "UTF-8"},
                    "Body": {
                        "Html": {"Data": _html_body(message), "Charset": "UTF-8"},
                        "Text": {"Data": message.text, "Charset": "UTF-8"},
                    },
                },
            )
        except (BotoCoreError, ClientError):
            logger.exception(
                "Failed to send SES email",
                extra={"to": to, "mail_key": key, "langcode": langcode},
            )
            return {"result": False}

        logger.info(
            "SES email sent",
            extra={
                "to": to,
                "mail_key": key,
                "message_id": response.get("MessageId", "unknown"),
            },
        )
        return {"result": True}
