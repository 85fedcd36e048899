import json
from dataclasses import dataclass
from typing import Optional

from models import db
from models.status_history import StatusHistory
from utils.roles import ADMIN_ROLES, CUSTOMER


@dataclass(frozen=True)
class Actor:
    """Verified caller handed in by the auth layer (or the system itself)."""

    user_id: Optional[int]
    role: str = CUSTOMER

    @property
    def is_admin(self):
        return self.role in ADMIN_ROLES


SYSTEM = Actor(user_id=None, role="SYSTEM")


def _value(status):
    return getattr(status, "value", status)


def record(kind, entity_id, action, from_status, to_status, actor=None, description=None, snapshot=None):
    """Stage a history row in the current transaction. Rows are never updated."""
    actor = actor or SYSTEM
    row = StatusHistory(
        entity_kind=kind,
        entity_id=entity_id,
        action=action,
        from_status=_value(from_status),
        to_status=_value(to_status),
        description=description,
        actor_id=actor.user_id,
        actor_role=actor.role,
        snapshot_json=json.dumps(snapshot, default=str) if snapshot else None,
    )
    db.session.add(row)
    return row


def history_for(kind, entity_id):
    return (
        StatusHistory.query
        .filter_by(entity_kind=kind, entity_id=entity_id)
        .order_by(StatusHistory.id.asc())
        .all()
    )
