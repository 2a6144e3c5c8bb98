# user_email_verification/runtime.py
"""
Wiring from settings to ready-to-use components.

Workers and the CLI call get_context(); tests build components directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from user_email_verification.accounts import AccountDirectory, load_account_directory
from user_email_verification.clock import Clock, SystemClock
from user_email_verification.config import AppConfig, load_settings
from user_email_verification.engine import VerificationEngine
from user_email_verification.mail import Mailer, SesMailer
from user_email_verification.policy import VerificationPolicy
from user_email_verification.processors import BatchProcessors
from user_email_verification.scheduler import EscalationScheduler, QueueNames, WorkQueue
from user_email_verification.store import VerificationStore


@dataclass
class Context:
    config: AppConfig
    policy: VerificationPolicy
    store: VerificationStore
    engine: VerificationEngine
    processors: BatchProcessors
    scheduler: EscalationScheduler


def build_context(
    cfg: AppConfig,
    *,
    accounts: AccountDirectory | None = None,
    mailer: Mailer | None = None,
    queue: WorkQueue | None = None,
    clock: Clock | None = None,
) -> Context:
    if accounts is None:
        accounts = load_account_directory(cfg.accounts_factory)
    if mailer is None:
        mailer = SesMailer(cfg.mail)
    if queue is None:
        from user_email_verification.queueing.queues import RqWorkQueue

        queue = RqWorkQueue.from_config(cfg.queue)
    clock = clock or SystemClock()

    policy = VerificationPolicy.from_config(cfg)
    store = VerificationStore(cfg.database_path, roles_of=accounts.roles_of)
    engine = VerificationEngine(
        store=store,
        policy=policy,
        accounts=accounts,
        clock=clock,
        hash_salt=cfg.hash_salt,
        mailer=mailer,
        site=cfg.mail,
    )
    return Context(
        config=cfg,
        policy=policy,
        store=store,
        engine=engine,
        processors=BatchProcessors(engine, cancel_method=cfg.cancel_method),
        scheduler=EscalationScheduler(
            store=store,
            policy=policy,
            queue=queue,
            clock=clock,
            queue_names=QueueNames.from_config(cfg.queue),
            batch_size=cfg.queue.batch_size,
        ),
    )


@lru_cache(maxsize=1)
def get_context() -> Context:
    return build_context(load_settings())
