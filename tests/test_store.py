from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from user_email_verification.exceptions import DuplicateRecord, StoreUnavailable
from user_email_verification.store import Cohort, CohortCriteria, VerificationStore

T = 1_000_000


def test_create_and_load(store: VerificationStore):
    rec = store.create(5, verified_now=False, now=T)
    assert rec.verified_at == 0
    assert rec.last_reminder_at == T
    assert rec.reminder_count == 0
    assert store.load(5) == rec
    assert store.load(6) is None


def test_create_verified_now(store: VerificationStore):
    rec = store.create(5, verified_now=True, now=T)
    assert rec.verified_at == T
    assert rec.is_verified


def test_duplicate_create_keeps_history(store: VerificationStore):
    store.create(5, verified_now=False, now=T)
    store.increment_reminder(5, T + 10)

    with pytest.raises(DuplicateRecord) as excinfo:
        store.create(5, verified_now=True, now=T + 20)
    assert excinfo.value.user_id == 5

    rec = store.load(5)
    assert rec.reminder_count == 1
    assert rec.verified_at == 0


def test_mark_verified_is_idempotent(store: VerificationStore):
    store.create(5, verified_now=False, now=T)
    assert store.mark_verified(5, T + 100) is True
    assert store.mark_verified(5, T + 200) is False
    assert store.load(5).verified_at == T + 100
    assert store.mark_verified(99, T) is False


def test_delete_is_noop_when_absent(store: VerificationStore):
    store.create(5, verified_now=False, now=T)
    store.delete(5)
    store.delete(5)
    assert store.load(5) is None


def test_increment_reminder_is_monotonic(store: VerificationStore):
    store.create(5, verified_now=False, now=T)
    store.increment_reminder(5, T + 50)
    store.increment_reminder(5, T + 10)  # late writer with an older clock
    rec = store.load(5)
    assert rec.reminder_count == 2
    assert rec.last_reminder_at == T + 50


def test_concurrent_increments_are_not_lost(store: VerificationStore):
    store.create(5, verified_now=False, now=T)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda i: store.increment_reminder(5, T + i), range(20)))

    rec = store.load(5)
    assert rec.reminder_count == 20
    assert rec.last_reminder_at == T + 19


def test_is_reminder_needed(store: VerificationStore):
    store.create(5, verified_now=False, now=T)
    kw = {"num_reminders": 2, "reminder_interval": 100}
    assert not store.is_reminder_needed(5, now=T + 99, **kw)
    assert store.is_reminder_needed(5, now=T + 100, **kw)

    store.increment_reminder(5, T + 100)
    store.increment_reminder(5, T + 200)
    assert not store.is_reminder_needed(5, now=T + 10_000, **kw)
    assert not store.is_reminder_needed(404, now=T + 10_000, **kw)


def _seed(store: VerificationStore) -> None:
    # uid: (verified_now, reminders)
    for uid, verified, reminders in [
        (1, False, 0),  # super user
        (2, False, 0),
        (3, False, 3),
        (4, True, 0),
        (5, False, 1),
        (6, False, 5),
    ]:
        store.create(uid, verified_now=verified, now=T)
        for _ in range(reminders):
            store.increment_reminder(uid, T)


def test_query_cohort_thresholds(store: VerificationStore):
    _seed(store)
    now = T + 100

    remind = store.query_cohort(CohortCriteria(Cohort.REMIND, 100, now, num_reminders=3))
    block = store.query_cohort(CohortCriteria(Cohort.BLOCK, 100, now, num_reminders=3))
    delete = store.query_cohort(CohortCriteria(Cohort.DELETE, 100, now, num_reminders=3))

    assert remind == [2, 5]
    assert block == [3, 6]
    assert delete == [2, 3, 5, 6]
    assert not set(remind) & set(block)


def test_query_cohort_interval_boundary(store: VerificationStore):
    store.create(2, verified_now=False, now=T)
    crit = dict(num_reminders=1)
    assert store.query_cohort(CohortCriteria(Cohort.REMIND, 100, T + 99, **crit)) == []
    assert store.query_cohort(CohortCriteria(Cohort.REMIND, 100, T + 100, **crit)) == [2]


def test_query_cohort_skip_roles(store: VerificationStore, accounts):
    accounts.add(2, roles={"administrator"})
    accounts.add(3, roles={"editor"})
    # uid 4 has no account roles at all
    for uid in (2, 3, 4):
        store.create(uid, verified_now=False, now=T)

    crit = CohortCriteria(
        Cohort.REMIND,
        0,
        T,
        num_reminders=1,
        skip_roles=frozenset({"administrator"}),
    )
    assert store.query_cohort(crit) == [3, 4]


def test_skip_roles_without_lookup_is_rejected(db_path: str):
    s = VerificationStore(db_path)
    s.init_schema()
    s.create(2, verified_now=False, now=T)
    with pytest.raises(ValueError):
        s.query_cohort(
            CohortCriteria(Cohort.REMIND, 0, T, num_reminders=1, skip_roles=frozenset({"x"}))
        )


def test_role_lookup_failure_is_store_unavailable(db_path: str):
    def boom(uid: int) -> set[str]:
        raise ConnectionError("accounts db down")

    s = VerificationStore(db_path, roles_of=boom)
    s.init_schema()
    s.create(2, verified_now=False, now=T)
    with pytest.raises(StoreUnavailable):
        s.query_cohort(
            CohortCriteria(Cohort.REMIND, 0, T, num_reminders=1, skip_roles=frozenset({"x"}))
        )


def test_io_failures_surface_as_store_unavailable(tmp_path):
    missing_schema = VerificationStore(str(tmp_path / "empty.db"))
    with pytest.raises(StoreUnavailable):
        missing_schema.load(5)

    # a directory cannot be opened as a database
    unopenable = VerificationStore(str(tmp_path))
    with pytest.raises(StoreUnavailable):
        unopenable.create(5, verified_now=False, now=T)
