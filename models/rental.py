import enum
from datetime import datetime
from models.db import db, status_type
from models.cancel_request import CancelRequestMixin


class RentalStatus(str, enum.Enum):
    CREATED = "created"
    PAID = "paid"
    OUT = "out"
    RETURNED = "returned"
    CANCELED = "canceled"


class Rental(CancelRequestMixin, db.Model):
    __tablename__ = "rentals"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    racket_id = db.Column(db.Integer, db.ForeignKey("rackets.id"), nullable=False, index=True)

    status = db.Column(status_type(RentalStatus), nullable=False, default=RentalStatus.CREATED, index=True)
    days = db.Column(db.Integer, nullable=False, default=7)
    amount = db.Column(db.Integer, nullable=False, default=0)

    # flipped together with the racket stock so dispatch/return adjust inventory once
    stock_reserved = db.Column(db.Boolean, nullable=False, default=False)

    paid_at = db.Column(db.DateTime, nullable=True)
    out_at = db.Column(db.DateTime, nullable=True)
    due_at = db.Column(db.DateTime, nullable=True)
    returned_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
