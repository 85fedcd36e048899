from flask import Blueprint, jsonify, request

from engine import get_engine
from utils.auth_context import login_required
from utils.http import actor, ensure_owner, history_rows, rental_dict

rentals_bp = Blueprint("rentals", __name__, url_prefix="/rentals")


@rentals_bp.post("")
@login_required
def create_rental():
    data = request.get_json(silent=True) or {}
    principal = actor()
    rental = get_engine().create_rental(
        principal.user_id,
        data.get("racket_id"),
        data.get("days"),
        amount=data.get("amount") or 0,
        actor=principal,
    )
    return jsonify(rental_dict(rental)), 201


@rentals_bp.get("/<int:rental_id>")
@login_required
def get_rental(rental_id):
    rental = ensure_owner(get_engine().rentals.get(rental_id), actor())
    return jsonify(**rental_dict(rental), history=history_rows("rental", rental_id)), 200


@rentals_bp.post("/<int:rental_id>/pay")
@login_required
def pay_rental(rental_id):
    engine = get_engine()
    principal = actor()
    outcome = engine.rental_pay_guard.run(
        request.headers.get("Idempotency-Key"),
        lambda: engine.pay_rental(rental_id, principal).to_dict(),
        user_id=principal.user_id,
    )
    if outcome.in_progress:
        return jsonify(error="IN_PROGRESS", message="This request is still being processed"), 409
    if outcome.value.get("conflict"):
        return jsonify(error="CONFLICT", **outcome.value), 409
    return jsonify(outcome.value), 200
