from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv


def _getenv_int(name: str, default: int) -> int:
    v = os.getenv(name, str(default)).strip()
    try:
        return int(v)
    except ValueError as err:
        raise ValueError(f"Environment variable {name} must be an integer; got {v!r}") from err


def _getenv_str(name: str, default: str) -> str:
    return os.getenv(name, default).strip()


def _getenv_list_str(name: str, default_csv: str) -> list[str]:
    raw = os.getenv(name, default_csv).strip()
    out: list[str] = []
    for tok in (t.strip() for t in raw.split(",")):
        if tok:
            out.append(tok)
    return out


def _getenv_bool(name: str, default: bool) -> bool:
    """
    Read a loosely-typed boolean from the environment.

    Treats "1", "true", "yes", "on" (case-insensitive) as True;
    "0", "false", "no", "off", "" as False. If unset, returns default.
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off", ""}:
        return False
    # Fallback: any other non-empty value -> True
    return True


def _getenv_text(name: str, default: str) -> str:
    """Multi-line template values; literal "\\n" sequences become newlines."""
    return os.getenv(name, default).replace("\\n", "\n")


# Load .env from project root if present
ROOT = Path(__file__).resolve().parents[1]
load_dotenv(ROOT / ".env", override=False)

DEFAULT_DB_PATH = (ROOT / "dev.db").as_posix()

DEFAULT_MAIL_SUBJECT = "Verify your email address at [site:name]"
DEFAULT_MAIL_BODY = (
    "[user:name],\n\n"
    "Please verify your email address by clicking this link:\n\n"
    "[user:verify-email]\n\n"
    "-- [site:name] team"
)
DEFAULT_EXTENDED_MAIL_SUBJECT = "Your account at [site:name] has been blocked"
DEFAULT_EXTENDED_MAIL_BODY = (
    "[user:name],\n\n"
    "Your account was blocked because the email address was not verified in time.\n"
    "You can still verify it and reactivate the account with this link:\n\n"
    "[user:verify-email-extended]\n\n"
    "-- [site:name] team"
)


@dataclass(frozen=True)
class VerificationConfig:
    """
    The recognised verification options.

    Intervals are in seconds. skip_roles holds role ids whose holders never
    need to verify.
    """

    validate_interval: int
    num_reminders: int
    extended_validate_interval: int
    skip_roles: tuple[str, ...]
    extended_enable: bool
    mail_subject: str
    mail_body: str
    extended_mail_subject: str
    extended_mail_body: str


@dataclass(frozen=True)
class QueueConfig:
    rq_redis_url: str
    block_queue_name: str
    remind_queue_name: str
    delete_queue_name: str
    dlq_name: str
    batch_size: int
    job_timeout: int
    retry_schedule: list[int] = field(default_factory=list)  # RQ Retry schedule in seconds

    @property
    def queue_names(self) -> list[str]:
        return [self.block_queue_name, self.remind_queue_name, self.delete_queue_name]


@dataclass(frozen=True)
class MailConfig:
    """
    Minimal AWS SES config plus the site identity used in messages.

    Access key / secret are not read here; boto3 falls back to the default
    AWS credential chain (env, shared config, EC2/ECS metadata, etc.).
    """

    from_email: str
    from_name: str
    aws_region: str
    site_name: str
    site_mail: str
    site_url: str
    default_langcode: str


@dataclass(frozen=True)
class AppConfig:
    verification: VerificationConfig
    queue: QueueConfig
    mail: MailConfig
    database_path: str
    hash_salt: str
    accounts_factory: str
    cancel_method: str


def _getenv_list_int(name: str, default_csv: str) -> list[int]:
    raw = os.getenv(name, default_csv).strip()
    out: list[int] = []
    for tok in (t.strip() for t in raw.split(",")):
        if not tok:
            continue
        try:
            out.append(int(tok))
        except ValueError as err:
            raise ValueError(
                f"Environment variable {name} must be a CSV of integers; got {raw!r}"
            ) from err
    return out


def load_verification_config() -> VerificationConfig:
    validate_interval = _getenv_int("UEV_VALIDATE_INTERVAL", 86400)
    num_reminders = _getenv_int("UEV_NUM_REMINDERS", 1)
    extended_validate_interval = _getenv_int("UEV_EXTENDED_VALIDATE_INTERVAL", 0)
    if validate_interval < 0:
        raise ValueError("UEV_VALIDATE_INTERVAL must be >= 0")
    if num_reminders < 0:
        raise ValueError("UEV_NUM_REMINDERS must be >= 0")
    if extended_validate_interval < 0:
        raise ValueError("UEV_EXTENDED_VALIDATE_INTERVAL must be >= 0")

    return VerificationConfig(
        validate_interval=validate_interval,
        num_reminders=num_reminders,
        extended_validate_interval=extended_validate_interval,
        skip_roles=tuple(_getenv_list_str("UEV_SKIP_ROLES", "")),
        extended_enable=_getenv_bool("UEV_EXTENDED_ENABLE", False),
        mail_subject=_getenv_text("UEV_MAIL_SUBJECT", DEFAULT_MAIL_SUBJECT),
        mail_body=_getenv_text("UEV_MAIL_BODY", DEFAULT_MAIL_BODY),
        extended_mail_subject=_getenv_text(
            "UEV_EXTENDED_MAIL_SUBJECT",
            DEFAULT_EXTENDED_MAIL_SUBJECT,
        ),
        extended_mail_body=_getenv_text("UEV_EXTENDED_MAIL_BODY", DEFAULT_EXTENDED_MAIL_BODY),
    )


def load_settings() -> AppConfig:
    queue = QueueConfig(
        rq_redis_url=_getenv_str("RQ_REDIS_URL", "redis://127.0.0.1:6379/0"),
        block_queue_name=_getenv_str("UEV_BLOCK_QUEUE", "user_email_verification_block_account"),
        remind_queue_name=_getenv_str("UEV_REMIND_QUEUE", "user_email_verification_reminders"),
        delete_queue_name=_getenv_str(
            "UEV_DELETE_QUEUE",
            "user_email_verification_delete_account",
        ),
        dlq_name=_getenv_str("DLQ_NAME", "user_email_verification_dlq"),
        batch_size=_getenv_int("UEV_BATCH_SIZE", 10),
        job_timeout=_getenv_int("UEV_JOB_TIMEOUT", 300),
        retry_schedule=_getenv_list_int("RETRY_SCHEDULE", "30,120,600"),
    )
    if queue.batch_size < 1:
        raise ValueError("UEV_BATCH_SIZE must be >= 1")

    mail = MailConfig(
        from_email=_getenv_str("SES_FROM_EMAIL", "noreply@example.com"),
        from_name=_getenv_str("SES_FROM_NAME", "Example"),
        aws_region=_getenv_str("SES_AWS_REGION", "us-east-1"),
        site_name=_getenv_str("SITE_NAME", "Example"),
        site_mail=_getenv_str("SITE_MAIL", "admin@example.com"),
        site_url=_getenv_str("SITE_URL", "http://localhost:8000").rstrip("/"),
        default_langcode=_getenv_str("DEFAULT_LANGCODE", "en"),
    )
    return AppConfig(
        verification=load_verification_config(),
        queue=queue,
        mail=mail,
        database_path=_getenv_str("DATABASE_PATH", DEFAULT_DB_PATH),
        hash_salt=_getenv_str("HASH_SALT", ""),
        accounts_factory=_getenv_str("UEV_ACCOUNTS_FACTORY", ""),
        cancel_method=_getenv_str("UEV_CANCEL_METHOD", "user_cancel_block"),
    )


__all__ = [
    "VerificationConfig",
    "QueueConfig",
    "MailConfig",
    "AppConfig",
    "load_settings",
    "load_verification_config",
    "DEFAULT_DB_PATH",
]
