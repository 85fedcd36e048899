from blinker import Namespace
from flask import current_app

_signals = Namespace()

# sender is the entity kind; receivers get entity_id, from_status, to_status
transition_committed = _signals.signal("transition-committed")


def notify_transition(result):
    """Fire-and-forget; a failing receiver never undoes a committed transition."""
    try:
        transition_committed.send(
            result.kind,
            entity_id=result.entity_id,
            from_status=result.from_status.value,
            to_status=result.to_status.value,
        )
    except Exception:
        current_app.logger.exception(
            "notification failed for %s %s (%s -> %s)",
            result.kind, result.entity_id, result.from_status.value, result.to_status.value,
        )
