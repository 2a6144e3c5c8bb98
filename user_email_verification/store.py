# user_email_verification/store.py
"""
Persistence for per-user verification records.

One row per uid in the user_email_verification table:

  uid            account id (primary key)
  verified       unix time of verification, 0 while unverified
  last_reminder  unix time of the last reminder (creation time initially)
  reminders      number of reminders sent so far

Every sqlite failure surfaces as StoreUnavailable. Each mutation touches a
single row in a single statement, so concurrent workers cannot lose updates.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any

from user_email_verification.db import VERIFICATION_TABLE_NAME, ensure_schema, get_connection
from user_email_verification.exceptions import DuplicateRecord, StoreUnavailable

log = logging.getLogger(__name__)

# Reserved super-user id; never escalated.
SUPERUSER_UID = 1

RolesOf = Callable[[int], Iterable[str]]


@dataclass(frozen=True)
class VerificationRecord:
    user_id: int
    verified_at: int
    last_reminder_at: int
    reminder_count: int

    @property
    def is_verified(self) -> bool:
        return self.verified_at != 0

    @classmethod
    def from_row(cls, row: sqlite3.Row | dict[str, Any]) -> VerificationRecord:
        return cls(
            user_id=int(row["uid"]),
            verified_at=int(row["verified"] or 0),
            last_reminder_at=int(row["last_reminder"] or 0),
            reminder_count=int(row["reminders"] or 0),
        )


class Cohort(str, Enum):
    BLOCK = "block_account"
    REMIND = "reminders"
    DELETE = "delete_account"


@dataclass(frozen=True)
class CohortCriteria:
    """
    Selection for one escalation cohort.

    Matches unverified records (uid > 1) whose last reminder is at least
    `interval` seconds before `now`. BLOCK additionally requires
    reminders >= num_reminders, REMIND requires reminders < num_reminders,
    DELETE adds nothing. Holders of any of `skip_roles` are excluded.
    """

    cohort: Cohort
    interval: int
    now: int
    num_reminders: int = 0
    skip_roles: frozenset[str] = frozenset()


class VerificationStore:
    def __init__(self, db_path: str | None = None, *, roles_of: RolesOf | None = None) -> None:
        self._db_path = db_path
        self._roles_of = roles_of

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            con = get_connection(self._db_path)
        except sqlite3.Error as err:
            raise StoreUnavailable(f"Cannot open verification store: {err}") from err
        try:
            yield con
            con.commit()
        except sqlite3.Error as err:
            con.rollback()
            raise StoreUnavailable(f"Verification store error: {err}") from err
        finally:
            con.close()

    def init_schema(self) -> None:
        with self._connect() as con:
            ensure_schema(con)

    # ------------------------------------------------------------------
    # Single-record operations
    # ------------------------------------------------------------------

    def load(self, user_id: int) -> VerificationRecord | None:
        with self._connect() as con:
            row = con.execute(
                f"SELECT uid, verified, last_reminder, reminders "
                f"FROM {VERIFICATION_TABLE_NAME} WHERE uid = ?",
                (int(user_id),),
            ).fetchone()
        return VerificationRecord.from_row(row) if row else None

    def create(self, user_id: int, *, verified_now: bool, now: int) -> VerificationRecord:
        """
        Insert a fresh record. Raises DuplicateRecord if the uid already has one.
        """
        record = VerificationRecord(
            user_id=int(user_id),
            verified_at=int(now) if verified_now else 0,
            last_reminder_at=int(now),
            reminder_count=0,
        )
        with self._connect() as con:
            try:
                con.execute(
                    f"INSERT INTO {VERIFICATION_TABLE_NAME} "
                    f"(uid, verified, last_reminder, reminders) VALUES (?, ?, ?, ?)",
                    (
                        record.user_id,
                        record.verified_at,
                        record.last_reminder_at,
                        record.reminder_count,
                    ),
                )
            except sqlite3.IntegrityError as err:
                raise DuplicateRecord(record.user_id) from err
        log.info(
            "Verification record created",
            extra={"uid": record.user_id, "verified": record.verified_at},
        )
        return record

    def mark_verified(self, user_id: int, now: int) -> bool:
        """
        Set verified = now for an unverified record.

        A second call keeps the first timestamp. Returns True if this call
        changed the row.
        """
        with self._connect() as con:
            cur = con.execute(
                f"UPDATE {VERIFICATION_TABLE_NAME} SET verified = ? WHERE uid = ? AND verified = 0",
                (int(now), int(user_id)),
            )
            changed = cur.rowcount > 0
        if changed:
            log.info("Email marked as verified", extra={"uid": int(user_id)})
        return changed

    def delete(self, user_id: int) -> None:
        with self._connect() as con:
            con.execute(
                f"DELETE FROM {VERIFICATION_TABLE_NAME} WHERE uid = ?",
                (int(user_id),),
            )

    def increment_reminder(self, user_id: int, now: int) -> None:
        """reminders += 1 and last_reminder moves forward to now, as one statement."""
        with self._connect() as con:
            con.execute(
                f"UPDATE {VERIFICATION_TABLE_NAME} "
                f"SET reminders = reminders + 1, last_reminder = MAX(last_reminder, ?) "
                f"WHERE uid = ?",
                (int(now), int(user_id)),
            )

    def is_reminder_needed(
        self,
        user_id: int,
        *,
        now: int,
        num_reminders: int,
        reminder_interval: int,
    ) -> bool:
        """Unverified, below the reminder limit and due for another reminder."""
        with self._connect() as con:
            row = con.execute(
                f"SELECT uid FROM {VERIFICATION_TABLE_NAME} "
                f"WHERE uid = ? AND verified = 0 AND reminders < ? AND last_reminder <= ?",
                (int(user_id), int(num_reminders), int(now) - int(reminder_interval)),
            ).fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # Cohort selection
    # ------------------------------------------------------------------

    def query_cohort(self, criteria: CohortCriteria) -> list[int]:
        """
        Return matching uids in ascending order.

        Read-only: running the same criteria twice yields the same list.
        """
        sql = (
            f"SELECT uid FROM {VERIFICATION_TABLE_NAME} "
            f"WHERE verified = 0 AND uid > ? AND last_reminder <= ?"
        )
        params: list[int] = [SUPERUSER_UID, int(criteria.now) - int(criteria.interval)]

        if criteria.cohort is Cohort.BLOCK:
            sql += " AND reminders >= ?"
            params.append(int(criteria.num_reminders))
        elif criteria.cohort is Cohort.REMIND:
            sql += " AND reminders < ?"
            params.append(int(criteria.num_reminders))
        sql += " ORDER BY uid"

        with self._connect() as con:
            uids = [int(r["uid"]) for r in con.execute(sql, params).fetchall()]

        if criteria.skip_roles:
            uids = [u for u in uids if not self.has_skip_role(u, criteria.skip_roles)]
        return uids

    def has_skip_role(self, user_id: int, skip_roles: frozenset[str]) -> bool:
        """
        True if the account holds any of skip_roles.

        Accounts without any role assignment never match.
        """
        if not skip_roles:
            return False
        if self._roles_of is None:
            raise ValueError("skip roles are configured but no roles_of lookup was provided")
        try:
            roles = set(self._roles_of(int(user_id)) or ())
        except Exception as err:  # noqa: BLE001
            raise StoreUnavailable(f"Role lookup failed for uid={user_id}: {err}") from err
        return not skip_roles.isdisjoint(roles)
