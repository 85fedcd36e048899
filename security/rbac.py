from functools import wraps
from flask import g, jsonify
from utils.roles import SUPER_ADMIN


def require_roles(*role_names: str):
    """
    Usage: @require_roles("ADMIN")
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            principal = getattr(g, "principal", None)
            if principal is None:
                return jsonify(error="Authentication required"), 401

            if principal.role != SUPER_ADMIN and principal.role not in role_names:
                return jsonify(error="Forbidden"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator
