import os
from urllib.parse import urlencode, urlparse, parse_qsl, urlunparse

import stripe
from flask import Blueprint, current_app, jsonify

from engine import get_engine
from models.order import OrderStatus
from utils.auth_context import login_required
from utils.audit import log_event
from utils.http import actor, ensure_owner

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")


def _append_query(url: str, params: dict) -> str:
    if not url:
        return url
    parts = urlparse(url)
    query = dict(parse_qsl(parts.query))
    query.update({k: v for k, v in params.items() if v is not None})
    return urlunparse(parts._replace(query=urlencode(query)))


@payments_bp.post("/orders/<int:order_id>/checkout")
@login_required
def start_checkout(order_id):
    stripe.api_key = os.getenv("STRIPE_SECRET_KEY")
    if not stripe.api_key:
        return jsonify(error="Stripe secret key missing (STRIPE_SECRET_KEY)"), 500

    success_url = os.getenv("STRIPE_SUCCESS_URL")
    cancel_url = os.getenv("STRIPE_CANCEL_URL")
    if not success_url or not cancel_url:
        return jsonify(error="Stripe success/cancel URLs not configured"), 500

    principal = actor()
    order = ensure_owner(get_engine().orders.get(order_id), principal)
    if order.status != OrderStatus.PENDING:
        return jsonify(error="Order is not awaiting payment", status=order.status.value), 409

    label = f"Stringing package ({order.package_sessions} sessions)" if order.package_sessions else "Order"
    session = stripe.checkout.Session.create(
        mode="payment",
        line_items=[{
            "price_data": {
                "currency": current_app.config["STRIPE_CURRENCY"],
                "product_data": {"name": f"{label} #{order.id}"},
                "unit_amount": order.total_amount,
            },
            "quantity": 1,
        }],
        success_url=_append_query(success_url, {"order_id": str(order.id)}),
        cancel_url=_append_query(cancel_url, {"order_id": str(order.id)}),
        metadata={"order_id": str(order.id), "user_id": str(order.user_id)},
    )

    log_event(
        "PAYMENT_SESSION_CREATED", user_id=principal.user_id, entity="order", entity_id=order.id,
        metadata={"stripe_session_id": session["id"]}, actor_role=principal.role,
    )
    return jsonify(checkout_url=session["url"]), 200
