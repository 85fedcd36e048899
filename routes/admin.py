from datetime import datetime

from flask import Blueprint, jsonify, request

from engine import get_engine
from engine.errors import InvalidInput
from engine.slots import WEEKDAYS
from models import db
from models.racket import Racket
from security.rbac import require_roles
from utils.audit import log_event
from utils.http import SERIALIZERS, actor, iso, pass_dict, transition_response

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")

KINDS = {"orders": "order", "rentals": "rental", "applications": "application"}
ENTITY_PATH = "/<any(orders, rentals, applications):plural>/<int:entity_id>"


def _audit(action, entity, entity_id, metadata=None):
    principal = actor()
    log_event(
        action,
        user_id=principal.user_id,
        entity=entity,
        entity_id=entity_id,
        metadata=metadata,
        actor_role=principal.role,
    )


def _slot_config_dict(config):
    return {
        "capacity": config.capacity,
        "business_days": config.business_days,
        "business_day_names": [WEEKDAYS[d] for d in config.business_days or []],
        "holidays": config.holidays,
        "exceptions": config.exceptions,
        "start_time": config.start_time,
        "end_time": config.end_time,
        "interval_minutes": config.interval_minutes,
        "booking_window_days": config.booking_window_days,
        "same_day_cutoff_hour": config.same_day_cutoff_hour,
        "updated_by": config.updated_by,
        "updated_at": iso(config.updated_at),
    }


# ---------- lifecycles ----------
@admin_bp.post(ENTITY_PATH + "/status")
@require_roles("ADMIN")
def change_status(plural, entity_id):
    kind = KINDS[plural]
    data = request.get_json(silent=True) or {}
    target = data.get("status")
    if not target:
        return jsonify(error="status required"), 400

    machine = get_engine().machine(kind)
    # the status the admin was looking at; defaults to what is stored now
    expected = data.get("expected") or machine.get(entity_id).status
    result = machine.transition(
        entity_id,
        expected,
        target,
        actor=actor(),
        action="admin-status",
        description=(data.get("description") or "").strip()[:255] or None,
    )
    if result.ok and not result.idempotent:
        _audit("ADMIN_STATUS_CHANGE", kind, entity_id, {
            "from": result.from_status.value, "to": result.to_status.value,
        })
    return transition_response(result, {kind: SERIALIZERS[kind](machine.get(entity_id))})


@admin_bp.post(ENTITY_PATH + "/cancel-approve")
@require_roles("ADMIN")
def approve_cancel(plural, entity_id):
    kind = KINDS[plural]
    result = get_engine().cancellation(kind).approve(entity_id, actor())
    if result.ok:
        _audit("ADMIN_CANCEL_APPROVE", kind, entity_id)
    return transition_response(result)


@admin_bp.post(ENTITY_PATH + "/cancel-reject")
@require_roles("ADMIN")
def reject_cancel(plural, entity_id):
    kind = KINDS[plural]
    data = request.get_json(silent=True) or {}
    entity = get_engine().cancellation(kind).reject(entity_id, actor(), data.get("reason_text"))
    _audit("ADMIN_CANCEL_REJECT", kind, entity_id, {"reason_text": data.get("reason_text")})
    return jsonify(SERIALIZERS[kind](entity)), 200


@admin_bp.post(ENTITY_PATH + "/reconcile")
@require_roles("ADMIN")
def reconcile(plural, entity_id):
    kind = KINDS[plural]
    result = get_engine().reconcile(kind, entity_id)
    _audit("ADMIN_RECONCILE", kind, entity_id, {"status": result.to_status.value})
    return transition_response(result)


# ---------- passes ----------
@admin_bp.get("/passes/<int:pass_id>")
@require_roles("ADMIN")
def get_pass(pass_id):
    return jsonify(pass_dict(get_engine().passes.get(pass_id))), 200


@admin_bp.post("/passes/<int:pass_id>/adjust-sessions")
@require_roles("ADMIN")
def adjust_pass_sessions(pass_id):
    data = request.get_json(silent=True) or {}
    principal = actor()
    service_pass = get_engine().passes.adjust_sessions(
        pass_id, data.get("delta"), admin_id=principal.user_id, reason=data.get("reason")
    )
    _audit("ADMIN_PASS_ADJUST", "service_pass", pass_id, {"delta": data.get("delta")})
    return jsonify(pass_dict(service_pass)), 200


@admin_bp.post("/passes/<int:pass_id>/extend")
@require_roles("ADMIN")
def extend_pass(pass_id):
    data = request.get_json(silent=True) or {}
    new_expiry = None
    if data.get("new_expiry"):
        try:
            new_expiry = datetime.fromisoformat(data["new_expiry"])
        except (TypeError, ValueError):
            raise InvalidInput("Invalid new_expiry. Use ISO e.g. 2027-01-20T18:00:00")

    result = get_engine().passes.extend(
        pass_id,
        days=data.get("days"),
        new_expiry=new_expiry,
        admin_id=actor().user_id,
        reason=data.get("reason"),
    )
    if result.conflict:
        return jsonify(error="CONFLICT", message="Expiry changed meanwhile; reload and try again"), 409
    _audit("ADMIN_PASS_EXTEND", "service_pass", pass_id, {"expires_at": result.expires_at})
    return jsonify(id=pass_id, expires_at=iso(result.expires_at)), 200


# ---------- points ----------
@admin_bp.post("/points/adjust")
@require_roles("ADMIN")
def adjust_points():
    data = request.get_json(silent=True) or {}
    user_id = data.get("user_id")
    if not user_id:
        return jsonify(error="user_id required"), 400

    points = get_engine().points
    posted = points.adjust(
        int(user_id), data.get("amount"), admin_id=actor().user_id,
        reason=data.get("reason"), ref_key=data.get("ref_key"),
    )
    if not posted.duplicate:
        _audit("ADMIN_POINTS_ADJUST", "points", user_id, {"amount": posted.amount})
    return jsonify(
        transaction_id=posted.transaction_id,
        duplicate=posted.duplicate,
        balance=points.balance_of(int(user_id)).to_dict(),
    ), 200


@admin_bp.post("/points/reverse")
@require_roles("ADMIN")
def reverse_points():
    data = request.get_json(silent=True) or {}
    user_id = data.get("user_id")
    if not user_id:
        return jsonify(error="user_id required"), 400

    points = get_engine().points
    posted = points.reverse(
        int(user_id), data.get("ref_key"),
        tx_type=data.get("type") or "accrual", reason=data.get("reason"),
    )
    if not posted.duplicate:
        _audit("ADMIN_POINTS_REVERSE", "points", user_id, {"ref_key": data.get("ref_key"), "amount": posted.amount})
    return jsonify(
        transaction_id=posted.transaction_id,
        duplicate=posted.duplicate,
        balance=points.balance_of(int(user_id)).to_dict(),
    ), 200


# ---------- settings / inventory ----------
@admin_bp.get("/settings/slots")
@require_roles("ADMIN")
def get_slot_settings():
    return jsonify(_slot_config_dict(get_engine().slots.load_config())), 200


@admin_bp.put("/settings/slots")
@require_roles("ADMIN")
def update_slot_settings():
    data = request.get_json(silent=True) or {}
    config = get_engine().slots.update_config(data, admin_id=actor().user_id)
    _audit("ADMIN_SLOT_SETTINGS", "booking_slot_config", config.id, data)
    return jsonify(_slot_config_dict(config)), 200


@admin_bp.post("/rackets")
@require_roles("ADMIN")
def create_racket():
    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    if not name:
        return jsonify(error="Racket name required"), 400
    try:
        stock = int(data.get("stock", 1))
    except (TypeError, ValueError):
        return jsonify(error="stock must be an integer"), 400
    if stock < 0:
        return jsonify(error="stock must not be negative"), 400

    racket = Racket(name=name, stock=stock)
    db.session.add(racket)
    db.session.commit()
    _audit("RACKET_CREATE", "racket", racket.id)
    return jsonify(id=racket.id, name=racket.name, stock=racket.stock), 201
