from flask import Blueprint, jsonify, request

from engine import get_engine
from utils.auth_context import login_required
from utils.http import actor, cancel_request_dict

cancellations_bp = Blueprint("cancellations", __name__)

KINDS = {"orders": "order", "rentals": "rental", "applications": "application"}


def _payload(entity):
    return jsonify(id=entity.id, status=entity.status.value, cancel_request=cancel_request_dict(entity)), 200


@cancellations_bp.post("/<any(orders, rentals, applications):plural>/<int:entity_id>/cancel-request")
@login_required
def request_cancel(plural, entity_id):
    data = request.get_json(silent=True) or {}
    entity = get_engine().cancellation(KINDS[plural]).request_cancel(
        entity_id, actor(), data.get("reason_code"), data.get("reason_text")
    )
    return _payload(entity)


@cancellations_bp.post("/<any(orders, rentals, applications):plural>/<int:entity_id>/cancel-withdraw")
@login_required
def withdraw_cancel(plural, entity_id):
    entity = get_engine().cancellation(KINDS[plural]).withdraw(entity_id, actor())
    return _payload(entity)
