"""Daily stringing capacity and booking-window checks.

Capacity counts are snapshots, not reservations: two customers validated
against the same count may both get through. Submission re-checks at commit
time so the window is as small as the store allows.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List, Optional

import pytz
from sqlalchemy import func

from models import db
from models.application import Application, ApplicationStatus
from models.booking_slot_config import BookingSlotConfig
from engine.errors import CapacityExceeded, InvalidInput, SlotRejected

CONFIG_ID = 1

# drafts never hold a slot, canceled ones give it back
COUNTED_STATUSES = (
    ApplicationStatus.SUBMITTED,
    ApplicationStatus.REVIEWING,
    ApplicationStatus.ACCEPTED,
    ApplicationStatus.IN_PROGRESS,
    ApplicationStatus.COMPLETED,
)

CLOSED_DAY = "CLOSED_DAY"
OUT_OF_WINDOW = "OUT_OF_WINDOW"
TOO_SOON = "TOO_SOON"
OUTSIDE_HOURS = "OUTSIDE_HOURS"
CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"

# business_days are stored Sunday = 0 .. Saturday = 6
WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


def _clamp(value, low, high):
    return max(low, min(high, int(value)))


def _to_minutes(hhmm: str) -> int:
    try:
        h, m = hhmm.split(":")
        return int(h) * 60 + int(m)
    except (AttributeError, ValueError):
        raise InvalidInput(f"Invalid time {hhmm!r}, expected HH:MM")


def _to_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def day_number(day: date) -> int:
    """Sunday = 0 numbering used by the stored business_days."""
    return (day.weekday() + 1) % 7


def parse_date(value) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise InvalidInput("Invalid date. Use YYYY-MM-DD")


@dataclass(frozen=True)
class DaySchedule:
    is_open: bool
    capacity: int
    start: str
    end: str
    interval: int


@dataclass(frozen=True)
class BookingSlotSummary:
    date: date
    capacity: int
    booked: int

    @property
    def remaining(self) -> int:
        return max(0, self.capacity - self.booked)

    def to_dict(self):
        return {
            "date": self.date.isoformat(),
            "capacity": self.capacity,
            "booked": self.booked,
            "remaining": self.remaining,
        }


@dataclass(frozen=True)
class SlotDecision:
    ok: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    summary: Optional[BookingSlotSummary] = None

    def raise_for_rejection(self):
        if self.ok:
            return
        if self.reason == CAPACITY_EXCEEDED:
            raise CapacityExceeded(self.message, date=self.summary.date.isoformat() if self.summary else None)
        raise SlotRejected(self.message, reason=self.reason)


class SlotEngine:
    def __init__(self, timezone="UTC"):
        self.timezone = pytz.timezone(timezone)

    def desk_now(self, now: Optional[datetime] = None) -> datetime:
        """Desk wall-clock time for ``now``; naive values are taken as UTC."""
        now = now or datetime.utcnow()
        if now.tzinfo is None:
            now = pytz.utc.localize(now)
        return now.astimezone(self.timezone).replace(tzinfo=None)

    def load_config(self) -> BookingSlotConfig:
        config = db.session.get(BookingSlotConfig, CONFIG_ID)
        if config is None:
            # unsaved defaults until an admin stores settings
            config = BookingSlotConfig(
                id=CONFIG_ID, capacity=1, business_days=[1, 2, 3, 4, 5], holidays=[], exceptions=[],
                start_time="10:00", end_time="19:00", interval_minutes=30,
                booking_window_days=30, same_day_cutoff_hour=17,
            )
        return config

    def schedule_for(self, day: date, config: Optional[BookingSlotConfig] = None) -> DaySchedule:
        config = config or self.load_config()
        iso = day.isoformat()

        capacity = _clamp(config.capacity, 1, 10)
        start, end = config.start_time, config.end_time
        interval = _clamp(config.interval_minutes, 5, 240)

        exception = next((e for e in (config.exceptions or []) if e.get("date") == iso), None)
        if exception is not None:
            if exception.get("closed"):
                return DaySchedule(False, capacity, start, end, interval)
            start = exception.get("start") or start
            end = exception.get("end") or end
            if exception.get("interval") is not None:
                interval = _clamp(exception["interval"], 5, 240)
            if exception.get("capacity") is not None:
                capacity = _clamp(exception["capacity"], 1, 10)
            return DaySchedule(True, capacity, start, end, interval)

        is_open = day_number(day) in (config.business_days or []) and iso not in (config.holidays or [])
        return DaySchedule(is_open, capacity, start, end, interval)

    def times_for(self, day: date, schedule: Optional[DaySchedule] = None) -> List[str]:
        schedule = schedule or self.schedule_for(day)
        if not schedule.is_open:
            return []
        start, end = _to_minutes(schedule.start), _to_minutes(schedule.end)
        return [_to_hhmm(t) for t in range(start, end + 1, schedule.interval)]

    def count_booked(self, day: date) -> int:
        return (
            db.session.query(func.count(Application.id))
            .filter(Application.preferred_date == day, Application.status.in_(COUNTED_STATUSES))
            .scalar()
        ) or 0

    def summarize(self, day, schedule: Optional[DaySchedule] = None) -> BookingSlotSummary:
        day = parse_date(day)
        schedule = schedule or self.schedule_for(day)
        capacity = schedule.capacity if schedule.is_open else 0
        return BookingSlotSummary(date=day, capacity=capacity, booked=self.count_booked(day))

    def validate_booking_window(self, day, time: str, now: Optional[datetime] = None) -> SlotDecision:
        day = parse_date(day)
        now = self.desk_now(now)
        config = self.load_config()
        schedule = self.schedule_for(day, config)

        if not schedule.is_open:
            return SlotDecision(False, CLOSED_DAY, "The desk is closed on that date")

        today = now.date()
        window_days = max(0, int(config.booking_window_days))
        if day < today or day > today + timedelta(days=window_days):
            return SlotDecision(
                False, OUT_OF_WINDOW, f"Bookings are accepted from today up to {window_days} days ahead"
            )

        if time not in self.times_for(day, schedule):
            return SlotDecision(False, OUTSIDE_HOURS, "Requested time is not an available slot")

        if day == today:
            if now.hour >= int(config.same_day_cutoff_hour):
                return SlotDecision(False, TOO_SOON, "Same-day bookings are closed for today")
            if _to_minutes(time) <= now.hour * 60 + now.minute:
                return SlotDecision(False, TOO_SOON, "Requested time has already passed")

        summary = self.summarize(day, schedule)
        if summary.remaining == 0:
            return SlotDecision(False, CAPACITY_EXCEEDED, "That date is fully booked", summary)
        return SlotDecision(True, summary=summary)

    def update_config(self, data: dict, admin_id=None) -> BookingSlotConfig:
        config = db.session.get(BookingSlotConfig, CONFIG_ID)
        if config is None:
            config = self.load_config()
            db.session.add(config)
        try:
            self._apply(config, data)
        except (InvalidInput, TypeError, ValueError) as exc:
            db.session.rollback()
            if isinstance(exc, InvalidInput):
                raise
            raise InvalidInput(str(exc))

        config.updated_by = admin_id
        db.session.commit()
        return config

    def _apply(self, config, data):
        if "capacity" in data:
            config.capacity = _clamp(data["capacity"], 1, 10)
        if "business_days" in data:
            days = data["business_days"]
            if not isinstance(days, list) or any(not isinstance(d, int) or not 0 <= d <= 6 for d in days):
                raise InvalidInput("business_days must be a list of day numbers 0..6 (Sunday = 0)")
            config.business_days = sorted(set(days))
        if "holidays" in data:
            config.holidays = sorted({parse_date(d).isoformat() for d in data["holidays"] or []})
        if "exceptions" in data:
            exceptions = []
            for item in data["exceptions"] or []:
                entry = {"date": parse_date(item.get("date")).isoformat()}
                if item.get("closed"):
                    entry["closed"] = True
                for key in ("start", "end"):
                    if item.get(key):
                        _to_minutes(item[key])
                        entry[key] = item[key]
                for key in ("interval", "capacity"):
                    if item.get(key) is not None:
                        entry[key] = int(item[key])
                exceptions.append(entry)
            config.exceptions = exceptions
        for key, column in (("start_time", "start_time"), ("end_time", "end_time")):
            if key in data:
                _to_minutes(data[key])
                setattr(config, column, data[key])
        if _to_minutes(config.end_time) < _to_minutes(config.start_time):
            raise InvalidInput("end_time must not be before start_time")
        if "interval_minutes" in data:
            config.interval_minutes = _clamp(data["interval_minutes"], 5, 240)
        if "booking_window_days" in data:
            config.booking_window_days = _clamp(data["booking_window_days"], 0, 365)
        if "same_day_cutoff_hour" in data:
            config.same_day_cutoff_hour = _clamp(data["same_day_cutoff_hour"], 0, 24)
