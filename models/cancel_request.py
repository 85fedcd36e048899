import enum
from models.db import db, status_type


class CancelStatus(str, enum.Enum):
    NONE = "none"
    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"


class CancelRequestMixin:
    """Cancel-request sub-object shared by orders, rentals and applications.

    Lives beside the main ``status`` column and never changes it on its own.
    """

    cancel_status = db.Column(status_type(CancelStatus), nullable=False, default=CancelStatus.NONE)
    cancel_reason_code = db.Column(db.String(40), nullable=True)
    cancel_reason_text = db.Column(db.String(255), nullable=True)
    cancel_requested_by = db.Column(db.Integer, nullable=True)
    cancel_requested_at = db.Column(db.DateTime, nullable=True)
    cancel_processed_at = db.Column(db.DateTime, nullable=True)
