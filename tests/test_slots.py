from datetime import date, datetime

import pytest

from conftest import ADMIN, MONDAY_9AM, SATURDAY, TUESDAY, WEDNESDAY
from engine import BookingEngine, EnginePolicy
from engine import slots as slot_rules
from engine.errors import CapacityExceeded, InvalidInput, SlotRejected
from engine.history import Actor
from engine.slots import SlotEngine


def test_default_schedule(engine):
    tuesday = date.fromisoformat(TUESDAY)
    times = engine.slots.times_for(tuesday)

    assert times[0] == "10:00" and times[-1] == "19:00"
    assert len(times) == 19
    assert engine.slots.times_for(date.fromisoformat(SATURDAY)) == []

    summary = engine.slots.summarize(TUESDAY)
    assert summary.to_dict() == {"date": TUESDAY, "capacity": 1, "booked": 0, "remaining": 1}
    assert engine.slots.summarize(SATURDAY).capacity == 0


@pytest.mark.parametrize("day, time, now, reason", [
    (SATURDAY, "10:00", MONDAY_9AM, slot_rules.CLOSED_DAY),
    ("2026-03-01", "10:00", MONDAY_9AM, slot_rules.CLOSED_DAY),
    ("2026-02-27", "10:00", MONDAY_9AM, slot_rules.OUT_OF_WINDOW),
    ("2026-04-15", "10:00", MONDAY_9AM, slot_rules.OUT_OF_WINDOW),
    (TUESDAY, "10:15", MONDAY_9AM, slot_rules.OUTSIDE_HOURS),
    (TUESDAY, "19:30", MONDAY_9AM, slot_rules.OUTSIDE_HOURS),
    ("2026-03-02", "12:00", datetime(2026, 3, 2, 17, 30), slot_rules.TOO_SOON),
    ("2026-03-02", "10:00", datetime(2026, 3, 2, 11, 0), slot_rules.TOO_SOON),
])
def test_window_rejections(engine, day, time, now, reason):
    decision = engine.slots.validate_booking_window(day, time, now)
    assert not decision.ok
    assert decision.reason == reason
    with pytest.raises(SlotRejected):
        decision.raise_for_rejection()


def test_same_day_before_cutoff_is_fine(engine):
    decision = engine.slots.validate_booking_window("2026-03-02", "14:00", MONDAY_9AM)
    assert decision.ok and decision.summary.remaining == 1


def test_capacity_counts_in_flight_applications(engine, make):
    engine.slots.update_config({"capacity": 2}, admin_id=ADMIN.user_id)
    make.submitted_application(user_id=1)
    make.submitted_application(user_id=2, time="11:00")

    decision = engine.slots.validate_booking_window(TUESDAY, "12:00", MONDAY_9AM)

    assert decision.reason == slot_rules.CAPACITY_EXCEEDED
    with pytest.raises(CapacityExceeded):
        decision.raise_for_rejection()


def test_booked_count_is_monotonic_in_submissions(engine, make):
    engine.slots.update_config({"capacity": 5}, admin_id=ADMIN.user_id)
    seen = [engine.slots.summarize(TUESDAY).booked]
    for user_id in (1, 2, 3):
        make.submitted_application(user_id=user_id)
        seen.append(engine.slots.summarize(TUESDAY).booked)

    assert seen == [0, 1, 2, 3]
    assert engine.slots.summarize(TUESDAY).remaining == 2
    # drafts hold nothing
    engine.desk.create_draft(4)
    assert engine.slots.summarize(TUESDAY).booked == 3


def test_submit_rejects_full_day(engine, make):
    make.submitted_application(user_id=1)
    app, _ = engine.desk.create_draft(2)

    with pytest.raises(CapacityExceeded):
        engine.desk.submit(app.id, Actor(user_id=2), TUESDAY, "12:00", now=MONDAY_9AM)
    assert engine.applications.get(app.id).status.value == "draft"


def test_exceptions_override_weekly_rules(engine):
    engine.slots.update_config({
        "holidays": [WEDNESDAY],
        "exceptions": [
            {"date": SATURDAY, "start": "09:00", "end": "12:00", "interval": 60, "capacity": 3},
            {"date": TUESDAY, "closed": True},
        ],
    }, admin_id=ADMIN.user_id)

    saturday = date.fromisoformat(SATURDAY)
    assert engine.slots.times_for(saturday) == ["09:00", "10:00", "11:00", "12:00"]
    assert engine.slots.summarize(SATURDAY).capacity == 3
    assert engine.slots.validate_booking_window(TUESDAY, "10:00", MONDAY_9AM).reason == slot_rules.CLOSED_DAY
    assert engine.slots.validate_booking_window(WEDNESDAY, "10:00", MONDAY_9AM).reason == slot_rules.CLOSED_DAY


def test_config_values_are_clamped(engine):
    config = engine.slots.update_config(
        {"capacity": 50, "interval_minutes": 1, "booking_window_days": 7}, admin_id=ADMIN.user_id,
    )
    assert (config.capacity, config.interval_minutes, config.booking_window_days) == (10, 5, 7)
    assert config.updated_by == ADMIN.user_id


@pytest.mark.parametrize("payload", [
    {"business_days": [1, 9]},
    {"start_time": "25:xx"},
    {"start_time": "18:00", "end_time": "09:00"},
    {"holidays": ["not-a-date"]},
])
def test_bad_config_is_rejected(engine, payload):
    with pytest.raises(InvalidInput):
        engine.slots.update_config(payload, admin_id=ADMIN.user_id)
    assert engine.slots.load_config().start_time == "10:00"


def test_window_is_judged_on_desk_clock(app):
    seoul = SlotEngine("Asia/Seoul")
    # 11:00 UTC is 20:00 in Seoul: Monday's slots are gone and same-day is closed
    evening = datetime(2026, 3, 2, 11, 0)
    assert seoul.desk_now(evening) == datetime(2026, 3, 2, 20, 0)

    decision = seoul.validate_booking_window("2026-03-02", "19:00", evening)
    assert not decision.ok and decision.reason == slot_rules.TOO_SOON
    assert SlotEngine().validate_booking_window("2026-03-02", "19:00", evening).ok

    # 16:00 UTC Monday is already Tuesday 01:00 at the desk
    late = datetime(2026, 3, 2, 16, 0)
    assert seoul.validate_booking_window("2026-03-02", "18:00", late).reason == slot_rules.OUT_OF_WINDOW
    assert seoul.validate_booking_window(TUESDAY, "10:00", late).ok


def test_engine_uses_configured_desk_timezone(app):
    policy = EnginePolicy.from_config({"DESK_TIMEZONE": "Asia/Seoul"})
    assert BookingEngine(policy).slots.desk_now(datetime(2026, 3, 2, 23, 30)) == datetime(2026, 3, 3, 8, 30)


def test_business_days_count_from_sunday(engine):
    sunday, monday = date(2026, 3, 1), date(2026, 3, 2)
    assert slot_rules.day_number(sunday) == 0
    assert slot_rules.day_number(date.fromisoformat(SATURDAY)) == 6
    assert slot_rules.WEEKDAYS[slot_rules.day_number(monday)] == "mon"

    engine.slots.update_config({"business_days": [0]}, admin_id=ADMIN.user_id)
    assert engine.slots.schedule_for(sunday).is_open
    assert not engine.slots.schedule_for(monday).is_open
