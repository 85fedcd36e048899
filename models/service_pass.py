import enum
from datetime import datetime
from models.db import db, status_type


class PassStatus(str, enum.Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELED = "canceled"


class ServicePass(db.Model):
    __tablename__ = "service_passes"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)

    # issuance is idempotent per purchase order
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, unique=True)
    service_type = db.Column(db.String(40), nullable=False, default="stringing")

    total = db.Column(db.Integer, nullable=False)
    remaining = db.Column(db.Integer, nullable=False)
    status = db.Column(status_type(PassStatus), nullable=False, default=PassStatus.ACTIVE, index=True)

    purchased_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    consumptions = db.relationship(
        "PassConsumption",
        back_populates="service_pass",
        order_by="PassConsumption.id",
        lazy="selectin",
    )

    __table_args__ = (
        db.CheckConstraint("remaining >= 0 AND remaining <= total", name="ck_service_passes_remaining_range"),
    )


class PassConsumption(db.Model):
    __tablename__ = "pass_consumptions"

    id = db.Column(db.Integer, primary_key=True)
    pass_id = db.Column(db.Integer, db.ForeignKey("service_passes.id"), nullable=False, index=True)
    application_id = db.Column(db.Integer, db.ForeignKey("applications.id"), nullable=False, index=True)

    used_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    reverted = db.Column(db.Boolean, default=False, nullable=False)
    reverted_at = db.Column(db.DateTime, nullable=True)

    service_pass = db.relationship("ServicePass", back_populates="consumptions")

    __table_args__ = (
        # exactly-once debit per application
        db.UniqueConstraint("pass_id", "application_id", name="uq_pass_consumption_once"),
    )


class PassEvent(db.Model):
    """Admin corrections on a pass (session adjustments, expiry extensions)."""

    __tablename__ = "pass_events"

    id = db.Column(db.Integer, primary_key=True)
    pass_id = db.Column(db.Integer, db.ForeignKey("service_passes.id"), nullable=False, index=True)
    kind = db.Column(db.String(30), nullable=False)  # adjust_sessions, extend_expiry
    from_value = db.Column(db.String(40), nullable=True)
    to_value = db.Column(db.String(40), nullable=True)
    delta = db.Column(db.Integer, nullable=True)
    reason = db.Column(db.String(255), nullable=True)
    admin_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
