import enum
from datetime import datetime
from models.db import db, status_type
from models.cancel_request import CancelRequestMixin


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"
    REFUNDED = "refunded"


class Order(CancelRequestMixin, db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)

    status = db.Column(status_type(OrderStatus), nullable=False, default=OrderStatus.PENDING, index=True)
    total_amount = db.Column(db.Integer, nullable=False, default=0)  # smallest currency unit

    # set only for service-package purchases; a pass is issued when the order is paid
    package_sessions = db.Column(db.Integer, nullable=True)
    service_type = db.Column(db.String(40), nullable=True)

    paid_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
