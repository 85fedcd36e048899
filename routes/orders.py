from flask import Blueprint, jsonify, request

from engine import get_engine
from utils.auth_context import login_required
from utils.http import actor, ensure_owner, history_rows, order_dict, transition_response

orders_bp = Blueprint("orders", __name__, url_prefix="/orders")


@orders_bp.post("")
@login_required
def create_order():
    data = request.get_json(silent=True) or {}
    engine = get_engine()
    principal = actor()

    def _create():
        order = engine.create_order(
            principal.user_id,
            data.get("total_amount"),
            package_sessions=data.get("package_sessions"),
            service_type=data.get("service_type"),
            actor=principal,
        )
        return order_dict(order)

    outcome = engine.order_guard.run(
        request.headers.get("Idempotency-Key"), _create, user_id=principal.user_id
    )
    if outcome.in_progress:
        return jsonify(error="IN_PROGRESS", message="This request is still being processed"), 409
    return jsonify(outcome.value), 200 if outcome.replayed else 201


@orders_bp.get("/<int:order_id>")
@login_required
def get_order(order_id):
    order = ensure_owner(get_engine().orders.get(order_id), actor())
    return jsonify(**order_dict(order), history=history_rows("order", order_id)), 200


@orders_bp.post("/<int:order_id>/confirm")
@login_required
def confirm_order(order_id):
    return transition_response(get_engine().confirm_order(order_id, actor()))
