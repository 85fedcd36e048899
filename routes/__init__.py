from .health import health_bp
from .slots import slots_bp
from .orders import orders_bp
from .rentals import rentals_bp
from .applications import applications_bp
from .cancellations import cancellations_bp
from .points import points_bp
from .payments import payments_bp
from .stripe_webhook import webhook_bp
from .admin import admin_bp
from .audit_logs import audit_bp

ALL_BLUEPRINTS = (
    health_bp,
    slots_bp,
    orders_bp,
    rentals_bp,
    applications_bp,
    cancellations_bp,
    points_bp,
    payments_bp,
    webhook_bp,
    admin_bp,
    audit_bp,
)
