from datetime import datetime
from models.db import db


class BookingSlotConfig(db.Model):
    """Single-row scheduling settings for the stringing desk (id = 1)."""

    __tablename__ = "booking_slot_config"

    id = db.Column(db.Integer, primary_key=True)

    capacity = db.Column(db.Integer, nullable=False, default=1)  # applications per day
    business_days = db.Column(db.JSON, nullable=False, default=lambda: [1, 2, 3, 4, 5])  # Sunday = 0
    holidays = db.Column(db.JSON, nullable=False, default=list)  # ["YYYY-MM-DD", ...]
    exceptions = db.Column(db.JSON, nullable=False, default=list)  # per-date overrides

    start_time = db.Column(db.String(5), nullable=False, default="10:00")
    end_time = db.Column(db.String(5), nullable=False, default="19:00")
    interval_minutes = db.Column(db.Integer, nullable=False, default=30)

    booking_window_days = db.Column(db.Integer, nullable=False, default=30)
    same_day_cutoff_hour = db.Column(db.Integer, nullable=False, default=17)

    updated_by = db.Column(db.Integer, nullable=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
