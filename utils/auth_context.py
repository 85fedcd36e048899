from functools import wraps
from flask import current_app, g, jsonify, request
from engine.history import Actor
from utils.roles import normalize_role


def load_current_principal():
    """Trust the identity forwarded by the upstream auth guard."""
    g.principal = None
    raw_id = request.headers.get(current_app.config["PRINCIPAL_USER_HEADER"])
    if not raw_id:
        return
    try:
        user_id = int(raw_id)
    except ValueError:
        current_app.logger.warning("ignoring malformed principal id %r", raw_id)
        return
    role = normalize_role(request.headers.get(current_app.config["PRINCIPAL_ROLE_HEADER"]))
    if role is None:
        current_app.logger.warning("ignoring unknown principal role for user %s", user_id)
        return
    g.principal = Actor(user_id=user_id, role=role)


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "principal", None) is None:
            return jsonify(error="Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper
