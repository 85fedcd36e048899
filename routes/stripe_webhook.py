import stripe
from flask import Blueprint, current_app, request, jsonify

from engine import get_engine
from engine.history import SYSTEM
from models.order import OrderStatus
from utils.audit import log_event

webhook_bp = Blueprint("webhook", __name__, url_prefix="/webhooks")

_TARGETS = {
    "checkout.session.completed": OrderStatus.PAID,
    "checkout.session.expired": OrderStatus.CANCELED,
}


def _apply_checkout_event(event_type, session):
    meta = session.get("metadata", {}) or {}
    order_id = meta.get("order_id")
    if not order_id:
        current_app.logger.warning("stripe session %s carries no order id", session.get("id"))
        return {"handled": False}

    target = _TARGETS[event_type]
    result = get_engine().orders.transition(
        int(order_id),
        OrderStatus.PENDING,
        target,
        actor=SYSTEM,
        action="stripe-webhook",
        description=f"Stripe {event_type}",
        snapshot={"stripe_session_id": session.get("id")},
    )
    if result.ok and not result.idempotent:
        log_event(
            "PAYMENT_PAID" if target == OrderStatus.PAID else "PAYMENT_EXPIRED",
            entity="order", entity_id=order_id, metadata={"stripe_session_id": session.get("id")},
            actor_role=SYSTEM.role,
        )
    return {"handled": True, **result.to_dict()}


@webhook_bp.post("/stripe")
def stripe_webhook():
    endpoint_secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    sig_header = request.headers.get("Stripe-Signature")
    payload = request.data

    if not endpoint_secret:
        return jsonify(error="Webhook secret not configured"), 500

    try:
        event = stripe.Webhook.construct_event(payload, sig_header, endpoint_secret)
    except (ValueError, stripe.SignatureVerificationError):
        return jsonify(error="Invalid webhook signature"), 400

    event_type = event.get("type")
    if event_type not in _TARGETS:
        return jsonify(received=True), 200

    session = event["data"]["object"]
    outcome = get_engine().webhook_guard.run(
        event.get("id"), lambda: _apply_checkout_event(event_type, session)
    )
    return jsonify(received=True, replayed=outcome.replayed, result=outcome.value), 200
