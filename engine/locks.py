"""Lease-style lock for batch jobs (stale draft cleanup, pass expiry).

Advisory and time-bounded: a crashed holder's lease simply runs out.
"""
from contextlib import contextmanager
from datetime import datetime, timedelta

from sqlalchemy import delete, or_, update

from models import db
from models.batch_lock import BatchLock
from engine.idempotency import insert_once


def acquire(name, owner, ttl_seconds, now=None) -> bool:
    now = now or datetime.utcnow()
    expires_at = now + timedelta(seconds=ttl_seconds)

    if db.session.get(BatchLock, name) is None:
        _, created = insert_once(
            BatchLock(name=name, owner=owner, acquired_at=now, expires_at=expires_at),
            lambda: db.session.get(BatchLock, name),
        )
        if created:
            db.session.commit()
            return True

    # take over an expired lease, or renew our own
    res = db.session.execute(
        update(BatchLock)
        .where(BatchLock.name == name, or_(BatchLock.expires_at < now, BatchLock.owner == owner))
        .values(owner=owner, acquired_at=now, expires_at=expires_at)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return res.rowcount == 1


def release(name, owner) -> bool:
    res = db.session.execute(delete(BatchLock).where(BatchLock.name == name, BatchLock.owner == owner))
    db.session.commit()
    return res.rowcount == 1


@contextmanager
def batch_lease(name, owner, ttl_seconds):
    acquired = acquire(name, owner, ttl_seconds)
    try:
        yield acquired
    finally:
        if acquired:
            release(name, owner)
