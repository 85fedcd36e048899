from datetime import datetime, timedelta

import pytest

from engine.errors import InvalidInput
from engine.idempotency import COMPLETED, IN_PROGRESS, IdempotencyGuard
from engine.locks import acquire, batch_lease, release
from models import db
from models.batch_lock import BatchLock
from models.idempotency_key import IdempotencyKey


def test_guard_runs_once_and_replays(app):
    guard = IdempotencyGuard("test-scope")
    calls = []

    def work():
        calls.append(1)
        return {"id": len(calls)}

    first = guard.run("key-1", work, user_id=1)
    second = guard.run("key-1", work, user_id=1)

    assert calls == [1]
    assert first.value == second.value == {"id": 1}
    assert not first.replayed and second.replayed
    assert IdempotencyKey.query.filter_by(scope="test-scope", key="key-1").one().status == COMPLETED


def test_guard_without_key_always_runs(app):
    guard = IdempotencyGuard("test-scope")
    calls = []
    guard.run(None, lambda: calls.append(1) or {})
    guard.run("", lambda: calls.append(1) or {})
    guard.run("   ", lambda: calls.append(1) or {})
    assert len(calls) == 3
    assert IdempotencyKey.query.count() == 0


def test_guard_rejects_overlong_keys(app):
    guard = IdempotencyGuard("test-scope")
    shared = "k" * 120
    guard.run(shared, lambda: {"id": 1}, user_id=1)

    calls = []
    with pytest.raises(InvalidInput):
        guard.run(shared + "-second", lambda: calls.append(1) or {"id": 2}, user_id=1)
    assert calls == []
    assert IdempotencyKey.query.filter_by(scope="test-scope").count() == 1


def test_guard_reports_in_flight_duplicate(app):
    guard = IdempotencyGuard("test-scope")
    db.session.add(IdempotencyKey(scope="test-scope", key="busy", user_id=1, status=IN_PROGRESS))
    db.session.commit()

    outcome = guard.run("busy", lambda: pytest.fail("must not run"), user_id=1)

    assert outcome.in_progress and outcome.value is None


def test_guard_rejects_key_reuse_by_another_user(app):
    guard = IdempotencyGuard("test-scope")
    guard.run("shared", lambda: {"ok": True}, user_id=1)
    with pytest.raises(InvalidInput):
        guard.run("shared", lambda: {"ok": True}, user_id=2)


def test_failed_operation_frees_the_key(app):
    guard = IdempotencyGuard("test-scope")

    def boom():
        raise InvalidInput("bad payload")

    with pytest.raises(InvalidInput):
        guard.run("retry-me", boom)
    assert IdempotencyKey.query.filter_by(key="retry-me").count() == 0

    assert guard.run("retry-me", lambda: {"ok": True}).value == {"ok": True}


def test_scopes_are_independent(app):
    a, b = IdempotencyGuard("scope-a"), IdempotencyGuard("scope-b")
    assert not a.run("k", lambda: {"n": 1}).replayed
    assert not b.run("k", lambda: {"n": 2}).replayed


def test_purge_expired(app):
    guard = IdempotencyGuard("test-scope", ttl_hours=24)
    guard.run("old", lambda: {})
    guard.run("new", lambda: {})
    row = IdempotencyKey.query.filter_by(key="old").one()
    row.created_at = datetime.utcnow() - timedelta(hours=30)
    db.session.commit()

    assert guard.purge_expired() == 1
    assert [k.key for k in IdempotencyKey.query.all()] == ["new"]


def test_batch_lease_excludes_second_worker(app):
    now = datetime.utcnow()
    assert acquire("expire-passes", "worker-a", 60, now=now)
    assert not acquire("expire-passes", "worker-b", 60, now=now)
    # renewing your own lease is fine
    assert acquire("expire-passes", "worker-a", 60, now=now)

    assert not release("expire-passes", "worker-b")
    assert release("expire-passes", "worker-a")
    assert acquire("expire-passes", "worker-b", 60, now=now)


def test_expired_lease_can_be_taken_over(app):
    start = datetime.utcnow()
    assert acquire("cleanup-drafts", "crashed", 60, now=start)

    later = start + timedelta(seconds=120)
    assert acquire("cleanup-drafts", "worker-b", 60, now=later)
    assert db.session.get(BatchLock, "cleanup-drafts").owner == "worker-b"


def test_batch_lease_releases_on_exit(app):
    with batch_lease("nightly", "worker-a", 60) as acquired:
        assert acquired
        with batch_lease("nightly", "worker-b", 60) as second:
            assert not second
    assert db.session.get(BatchLock, "nightly") is None
