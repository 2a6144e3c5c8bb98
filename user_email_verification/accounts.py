# user_email_verification/accounts.py
"""
Account collaborator interface.

Accounts live in the host application. This package reads them and asks the
host to block or cancel them through an AccountDirectory implementation,
configured with UEV_ACCOUNTS_FACTORY="package.module:callable".
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass, field
from typing import Protocol

STATUS_BLOCKED = 0
STATUS_ACTIVE = 1


@dataclass
class Account:
    """Host account as seen by the verification flows."""

    id: int
    name: str
    mail: str
    status: int = STATUS_ACTIVE
    preferred_langcode: str = "en"
    roles: set[str] = field(default_factory=set)

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE

    @property
    def is_blocked(self) -> bool:
        return self.status == STATUS_BLOCKED

    def has_role(self, role: str) -> bool:
        return role in self.roles


class AccountDirectory(Protocol):
    """
    Operations the host application must provide.

    load() returns None for unknown ids; mutations on unknown ids are no-ops.
    """

    def load(self, user_id: int) -> Account | None: ...

    def roles_of(self, user_id: int) -> set[str]: ...

    def block(self, user_id: int) -> None: ...

    def cancel(self, user_id: int, method: str) -> None: ...

    def notify_cancelled(self, account: Account) -> None: ...

    def find_active_by_mail(self, mail: str) -> Account | None: ...

    def find_active_by_name(self, name: str) -> Account | None: ...


def load_account_directory(target: str) -> AccountDirectory:
    """
    Resolve "module:callable" (or "module.callable") and call it with no
    arguments to obtain the host's AccountDirectory.
    """
    target = (target or "").strip()
    if not target:
        raise ValueError("UEV_ACCOUNTS_FACTORY must be set to 'module:callable'")
    if ":" in target:
        mod, name = target.split(":", 1)
    else:
        mod, name = target.rsplit(".", 1)
    factory = getattr(importlib.import_module(mod), name)
    return factory()
