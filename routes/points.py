from flask import Blueprint, jsonify, request

from engine import get_engine
from models.service_pass import ServicePass
from utils.auth_context import login_required
from utils.http import actor, iso, pass_dict

points_bp = Blueprint("points", __name__)


@points_bp.get("/points/me")
@login_required
def my_points():
    return jsonify(get_engine().points.balance_of(actor().user_id).to_dict()), 200


@points_bp.get("/points/me/history")
@login_required
def my_points_history():
    page = request.args.get("page", type=int) or 1
    limit = request.args.get("limit", type=int) or 20
    total, rows = get_engine().points.history(actor().user_id, page=page, limit=limit)
    return jsonify(
        total=total,
        items=[
            {
                "id": t.id,
                "amount": t.amount,
                "type": t.type.value,
                "status": t.status.value,
                "reason": t.reason,
                "ref_key": t.ref_key,
                "created_at": iso(t.created_at),
            }
            for t in rows
        ],
    ), 200


@points_bp.get("/passes/me")
@login_required
def my_passes():
    passes = (
        ServicePass.query
        .filter_by(user_id=actor().user_id)
        .order_by(ServicePass.expires_at.asc())
        .all()
    )
    return jsonify([pass_dict(p) for p in passes]), 200
