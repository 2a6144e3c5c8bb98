# tests/conftest.py
from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

# Ensure project root importable
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from user_email_verification.accounts import STATUS_ACTIVE, STATUS_BLOCKED, Account  # noqa: E402
from user_email_verification.clock import FixedClock  # noqa: E402
from user_email_verification.config import MailConfig  # noqa: E402
from user_email_verification.engine import VerificationEngine  # noqa: E402
from user_email_verification.exceptions import MailSendFailed  # noqa: E402
from user_email_verification.policy import VerificationPolicy  # noqa: E402
from user_email_verification.processors import BatchProcessors  # noqa: E402
from user_email_verification.scheduler import EscalationScheduler  # noqa: E402
from user_email_verification.store import VerificationStore  # noqa: E402

SALT = "test-hash-salt"
T0 = 1_700_000_000


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


class InMemoryAccounts:
    """AccountDirectory over a dict, recording every mutation."""

    def __init__(self) -> None:
        self.accounts: dict[int, Account] = {}
        self.blocked: list[int] = []
        self.cancelled: list[tuple[int, str]] = []
        self.notified: list[int] = []
        self.delete_on_cancel = False
        self.fail_block_for: set[int] = set()

    def add(
        self,
        uid: int,
        *,
        name: str | None = None,
        mail: str | None = None,
        roles: set[str] | None = None,
        status: int = STATUS_ACTIVE,
        langcode: str = "en",
    ) -> Account:
        account = Account(
            id=uid,
            name=name or f"user{uid}",
            mail=mail or f"user{uid}@example.com",
            status=status,
            preferred_langcode=langcode,
            roles=set(roles or ()),
        )
        self.accounts[uid] = account
        return account

    def load(self, user_id: int) -> Account | None:
        return self.accounts.get(int(user_id))

    def roles_of(self, user_id: int) -> set[str]:
        account = self.load(user_id)
        return set(account.roles) if account else set()

    def block(self, user_id: int) -> None:
        if int(user_id) in self.fail_block_for:
            raise RuntimeError(f"cannot block {user_id}")
        account = self.load(user_id)
        if account is not None:
            account.status = STATUS_BLOCKED
            self.blocked.append(account.id)

    def cancel(self, user_id: int, method: str) -> None:
        self.cancelled.append((int(user_id), method))
        if self.delete_on_cancel:
            self.accounts.pop(int(user_id), None)

    def notify_cancelled(self, account: Account) -> None:
        self.notified.append(account.id)

    def find_active_by_mail(self, mail: str) -> Account | None:
        for a in self.accounts.values():
            if a.mail == mail and a.is_active:
                return a
        return None

    def find_active_by_name(self, name: str) -> Account | None:
        for a in self.accounts.values():
            if a.name == name and a.is_active:
                return a
        return None


class RecordingMailer:
    def __init__(self) -> None:
        self.sent: list[SimpleNamespace] = []
        self.result = True
        self.exc: Exception | None = None

    def send(self, key: str, to: str, langcode: str, message: Any) -> dict[str, Any]:
        self.sent.append(SimpleNamespace(key=key, to=to, langcode=langcode, message=message))
        if self.exc is not None:
            raise self.exc
        return {"result": self.result}

    def fail_with(self, exc: Exception | None = None) -> None:
        self.exc = exc or MailSendFailed("transport down")

    def keys(self) -> list[str]:
        return [m.key for m in self.sent]


class RecordingQueue:
    def __init__(self) -> None:
        self.items: list[tuple[str, list[int]]] = []

    def enqueue(self, queue_name: str, user_ids: list[int]) -> None:
        self.items.append((queue_name, list(user_ids)))

    def for_queue(self, queue_name: str) -> list[list[int]]:
        return [ids for name, ids in self.items if name == queue_name]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@dataclass
class Env:
    policy: VerificationPolicy
    store: VerificationStore
    engine: VerificationEngine
    scheduler: EscalationScheduler
    processors: BatchProcessors
    clock: FixedClock
    accounts: InMemoryAccounts
    mailer: RecordingMailer
    queue: RecordingQueue


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(T0)


@pytest.fixture
def accounts() -> InMemoryAccounts:
    return InMemoryAccounts()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def work_queue() -> RecordingQueue:
    return RecordingQueue()


@pytest.fixture
def site() -> MailConfig:
    return MailConfig(
        from_email="noreply@example.com",
        from_name="Example",
        aws_region="us-east-1",
        site_name="Example Site",
        site_mail="admin@example.com",
        site_url="https://example.com",
        default_langcode="en",
    )


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "uev.db")


@pytest.fixture
def store(db_path: str, accounts: InMemoryAccounts) -> VerificationStore:
    s = VerificationStore(db_path, roles_of=accounts.roles_of)
    s.init_schema()
    return s


@pytest.fixture
def make_env(
    store: VerificationStore,
    clock: FixedClock,
    accounts: InMemoryAccounts,
    mailer: RecordingMailer,
    work_queue: RecordingQueue,
    site: MailConfig,
):
    def _make(*, batch_size: int = 10, **policy_overrides: Any) -> Env:
        values: dict[str, Any] = {
            "validate_interval": 864000,
            "num_reminders": 3,
            "extended_validate_interval": 1728000,
            "skip_roles": frozenset({"administrator"}),
            "extended_period_enabled": False,
            "mail_subject": "Verify your address at [site:name]",
            "mail_body": "Hello [user:name], open [user:verify-email]",
            "extended_mail_subject": "[user:name], your account is blocked",
            "extended_mail_body": "Reactivate: [user:verify-email-extended]",
        }
        values.update(policy_overrides)
        policy = VerificationPolicy(**values)
        engine = VerificationEngine(
            store=store,
            policy=policy,
            accounts=accounts,
            clock=clock,
            hash_salt=SALT,
            mailer=mailer,
            site=site,
        )
        return Env(
            policy=policy,
            store=store,
            engine=engine,
            scheduler=EscalationScheduler(
                store=store,
                policy=policy,
                queue=work_queue,
                clock=clock,
                batch_size=batch_size,
            ),
            processors=BatchProcessors(engine, cancel_method="user_cancel_block"),
            clock=clock,
            accounts=accounts,
            mailer=mailer,
            queue=work_queue,
        )

    return _make


@pytest.fixture
def env(make_env) -> Env:
    return make_env()
