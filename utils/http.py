from flask import g, jsonify

from engine.errors import PermissionDenied
from engine.history import history_for


def iso(value):
    return value.isoformat() if value else None


def actor():
    return g.principal


def transition_response(result, body=None):
    """200 for a committed or already-applied transition, 409 when another caller won."""
    payload = result.to_dict()
    if body:
        payload.update(body)
    if result.conflict:
        payload["error"] = "CONFLICT"
        payload["message"] = "Someone else changed this record; reload and try again"
        return jsonify(payload), 409
    return jsonify(payload), 200


def cancel_request_dict(entity):
    return {
        "status": entity.cancel_status.value,
        "reason_code": entity.cancel_reason_code,
        "reason_text": entity.cancel_reason_text,
        "requested_by": entity.cancel_requested_by,
        "requested_at": iso(entity.cancel_requested_at),
        "processed_at": iso(entity.cancel_processed_at),
    }


def order_dict(order):
    return {
        "id": order.id,
        "user_id": order.user_id,
        "status": order.status.value,
        "total_amount": order.total_amount,
        "package_sessions": order.package_sessions,
        "service_type": order.service_type,
        "paid_at": iso(order.paid_at),
        "created_at": iso(order.created_at),
        "cancel_request": cancel_request_dict(order),
    }


def rental_dict(rental):
    return {
        "id": rental.id,
        "user_id": rental.user_id,
        "racket_id": rental.racket_id,
        "status": rental.status.value,
        "days": rental.days,
        "amount": rental.amount,
        "paid_at": iso(rental.paid_at),
        "out_at": iso(rental.out_at),
        "due_at": iso(rental.due_at),
        "returned_at": iso(rental.returned_at),
        "cancel_request": cancel_request_dict(rental),
    }


def application_dict(app):
    return {
        "id": app.id,
        "user_id": app.user_id,
        "order_id": app.order_id,
        "rental_id": app.rental_id,
        "status": app.status.value,
        "service_type": app.service_type,
        "preferred_date": iso(app.preferred_date),
        "preferred_time": app.preferred_time,
        "pass_id": app.pass_id,
        "submitted_at": iso(app.submitted_at),
        "completed_at": iso(app.completed_at),
        "cancel_request": cancel_request_dict(app),
    }


def pass_dict(service_pass):
    return {
        "id": service_pass.id,
        "user_id": service_pass.user_id,
        "order_id": service_pass.order_id,
        "service_type": service_pass.service_type,
        "total": service_pass.total,
        "remaining": service_pass.remaining,
        "status": service_pass.status.value,
        "expires_at": iso(service_pass.expires_at),
        "consumptions": [
            {
                "application_id": c.application_id,
                "used_at": iso(c.used_at),
                "reverted": c.reverted,
            }
            for c in service_pass.consumptions
        ],
    }


SERIALIZERS = {
    "order": order_dict,
    "rental": rental_dict,
    "application": application_dict,
}


def ensure_owner(entity, principal):
    if principal.is_admin or entity.user_id == principal.user_id:
        return entity
    raise PermissionDenied("Not yours")


def history_rows(kind, entity_id):
    return [
        {
            "action": h.action,
            "from": h.from_status,
            "to": h.to_status,
            "description": h.description,
            "actor_id": h.actor_id,
            "actor_role": h.actor_role,
            "at": iso(h.created_at),
        }
        for h in history_for(kind, entity_id)
    ]
