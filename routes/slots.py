from flask import Blueprint, jsonify

from engine import get_engine
from engine.slots import parse_date

slots_bp = Blueprint("slots", __name__, url_prefix="/slots")


@slots_bp.get("/<day>")
def day_summary(day):
    engine = get_engine()
    day = parse_date(day)
    schedule = engine.slots.schedule_for(day)
    summary = engine.slots.summarize(day, schedule)
    return jsonify(
        **summary.to_dict(),
        is_open=schedule.is_open,
        times=engine.slots.times_for(day, schedule),
    ), 200
