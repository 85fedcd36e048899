from datetime import datetime
from models.db import db


class StatusHistory(db.Model):
    """Append-only timeline shared by orders, rentals and applications."""

    __tablename__ = "status_history"

    id = db.Column(db.Integer, primary_key=True)
    entity_kind = db.Column(db.String(20), nullable=False)  # order, rental, application
    entity_id = db.Column(db.Integer, nullable=False)

    action = db.Column(db.String(40), nullable=False)  # e.g. transition, cancel-request
    from_status = db.Column(db.String(20), nullable=True)
    to_status = db.Column(db.String(20), nullable=True)
    description = db.Column(db.String(255), nullable=True)

    actor_id = db.Column(db.Integer, nullable=True)
    actor_role = db.Column(db.String(20), nullable=True)
    snapshot_json = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.Index("ix_status_history_entity", "entity_kind", "entity_id"),
    )
