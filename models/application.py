import enum
from datetime import datetime
from models.db import db, status_type
from models.cancel_request import CancelRequestMixin


class ApplicationStatus(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    REVIEWING = "reviewing"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELED = "canceled"


class Application(CancelRequestMixin, db.Model):
    """Stringing-service request, optionally linked to the order or rental it came from."""

    __tablename__ = "applications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    rental_id = db.Column(db.Integer, db.ForeignKey("rentals.id"), nullable=True, index=True)

    status = db.Column(status_type(ApplicationStatus), nullable=False, default=ApplicationStatus.DRAFT, index=True)
    service_type = db.Column(db.String(40), nullable=False, default="stringing")

    preferred_date = db.Column(db.Date, nullable=True, index=True)
    preferred_time = db.Column(db.String(5), nullable=True)  # HH:MM

    # pass reserved at submit time, debited when work starts
    pass_id = db.Column(db.Integer, db.ForeignKey("service_passes.id"), nullable=True)

    submitted_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        # Hard business-rule: one open draft per order and one per rental
        db.Index(
            "uq_applications_draft_order",
            "order_id",
            unique=True,
            sqlite_where=db.text("status = 'draft'"),
            postgresql_where=db.text("status = 'draft'"),
        ),
        db.Index(
            "uq_applications_draft_rental",
            "rental_id",
            unique=True,
            sqlite_where=db.text("status = 'draft'"),
            postgresql_where=db.text("status = 'draft'"),
        ),
    )
