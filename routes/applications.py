from flask import Blueprint, jsonify, request

from engine import get_engine
from utils.auth_context import login_required
from utils.http import actor, application_dict, ensure_owner, history_rows, transition_response

applications_bp = Blueprint("applications", __name__, url_prefix="/applications")


@applications_bp.post("")
@login_required
def create_application():
    data = request.get_json(silent=True) or {}
    principal = actor()
    app, created = get_engine().desk.create_draft(
        principal.user_id,
        order_id=data.get("order_id"),
        rental_id=data.get("rental_id"),
        service_type=data.get("service_type"),
        actor=principal,
    )
    return jsonify(**application_dict(app), created=created), 201 if created else 200


@applications_bp.get("/<int:application_id>")
@login_required
def get_application(application_id):
    app = ensure_owner(get_engine().applications.get(application_id), actor())
    return jsonify(**application_dict(app), history=history_rows("application", application_id)), 200


@applications_bp.post("/<int:application_id>/submit")
@login_required
def submit_application(application_id):
    data = request.get_json(silent=True) or {}
    engine = get_engine()
    result = engine.desk.submit(
        application_id,
        actor(),
        data.get("preferred_date"),
        data.get("preferred_time"),
        use_pass=bool(data.get("use_pass")),
    )
    app = engine.applications.get(application_id)
    return transition_response(result, {"application": application_dict(app)})
