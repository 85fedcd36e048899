"""Exactly-once helpers.

``insert_once`` is the single primitive behind every "do this once" rule in
the engine: a unique constraint decides the winner and losers get the row
that is already there. ``IdempotencyGuard`` builds on it for caller-supplied
keys (the ``Idempotency-Key`` header, Stripe event ids).
"""
import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError

from models import db
from models.idempotency_key import IdempotencyKey
from engine.errors import InvalidInput

IN_PROGRESS = "IN_PROGRESS"
COMPLETED = "COMPLETED"
MAX_KEY_LENGTH = 120


def insert_once(row, lookup: Callable[[], Any]):
    """Flush ``row``; on a uniqueness clash roll back and return the existing row.

    Returns ``(row, created)``. The session must hold no other pending work,
    since a clash rolls back the whole transaction. The caller commits.
    """
    db.session.add(row)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        existing = lookup()
        if existing is None:
            raise
        return existing, False
    return row, True


@dataclass
class IdempotentResult:
    value: Any
    replayed: bool = False
    in_progress: bool = False


class IdempotencyGuard:
    def __init__(self, scope: str, ttl_hours: int = 24):
        self.scope = scope
        self.ttl_hours = ttl_hours

    def _lookup(self, key):
        return IdempotencyKey.query.filter_by(scope=self.scope, key=key).first()

    def run(self, key: Optional[str], fn: Callable[[], dict], user_id=None) -> IdempotentResult:
        """Run ``fn`` once per key; replays get the stored JSON result back."""
        key = (key or "").strip()
        if not key:
            return IdempotentResult(value=fn())
        if len(key) > MAX_KEY_LENGTH:
            raise InvalidInput(f"Idempotency key longer than {MAX_KEY_LENGTH} characters")
        row, created = insert_once(
            IdempotencyKey(scope=self.scope, key=key, user_id=user_id, status=IN_PROGRESS),
            lambda: self._lookup(key),
        )
        if created:
            db.session.commit()
        else:
            if row.user_id is not None and user_id is not None and row.user_id != user_id:
                raise InvalidInput("Idempotency key already used by another caller")
            if row.status == COMPLETED:
                return IdempotentResult(value=json.loads(row.response_json or "null"), replayed=True)
            return IdempotentResult(value=None, replayed=True, in_progress=True)

        row_id = row.id
        try:
            value = fn()
        except Exception:
            # free the key so the caller can retry the failed operation
            db.session.rollback()
            db.session.execute(delete(IdempotencyKey).where(IdempotencyKey.id == row_id))
            db.session.commit()
            raise

        db.session.execute(
            update(IdempotencyKey)
            .where(IdempotencyKey.id == row_id, IdempotencyKey.status == IN_PROGRESS)
            .values(status=COMPLETED, response_json=json.dumps(value, default=str), completed_at=datetime.utcnow())
        )
        db.session.commit()
        return IdempotentResult(value=value)

    def purge_expired(self, now=None) -> int:
        now = now or datetime.utcnow()
        cutoff = now - timedelta(hours=self.ttl_hours)
        res = db.session.execute(
            delete(IdempotencyKey).where(IdempotencyKey.scope == self.scope, IdempotencyKey.created_at < cutoff)
        )
        db.session.commit()
        return res.rowcount
