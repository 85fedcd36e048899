import enum
from datetime import datetime
from models.db import db, status_type


class PointsTransactionType(str, enum.Enum):
    ACCRUAL = "accrual"
    SPEND = "spend"
    ADMIN_ADJUST = "admin_adjust"
    HOLD = "hold"
    RELEASE = "release"
    REVERSAL = "reversal"


class PointsTransactionStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    HELD = "held"
    CANCELED = "canceled"


class PointsTransaction(db.Model):
    __tablename__ = "points_transactions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)

    amount = db.Column(db.Integer, nullable=False)  # signed
    type = db.Column(status_type(PointsTransactionType), nullable=False)
    status = db.Column(status_type(PointsTransactionStatus), nullable=False, default=PointsTransactionStatus.CONFIRMED)
    reason = db.Column(db.String(255), nullable=True)
    ref_key = db.Column(db.String(120), nullable=True)
    admin_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
    processed_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        # Event-driven postings are written once per (user, type, refKey)
        db.Index(
            "uq_points_user_type_ref",
            "user_id",
            "type",
            "ref_key",
            unique=True,
            sqlite_where=db.text("ref_key IS NOT NULL"),
            postgresql_where=db.text("ref_key IS NOT NULL"),
        ),
    )


class PointsAccount(db.Model):
    """Running balance cache; always moved in the same commit as its ledger row."""

    __tablename__ = "points_accounts"

    user_id = db.Column(db.Integer, primary_key=True, autoincrement=False)
    balance = db.Column(db.Integer, nullable=False, default=0)
    debt = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
