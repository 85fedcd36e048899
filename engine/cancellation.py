"""Cancel-request protocol layered over an entity's main lifecycle.

none -> requested -> approved | rejected, and requested -> none on withdrawal
by the original requester. Only approval touches the main status, and it does
so in the same conditional update that flips the request.
"""
from datetime import datetime

from flask import current_app
from sqlalchemy import update

from models import db
from models.cancel_request import CancelStatus
from engine import history
from engine.errors import InvalidState, PermissionDenied


class CancellationWorkflow:
    def __init__(self, machine, requestable_from, canceled_status):
        self.machine = machine
        self.requestable_from = tuple(requestable_from)
        self.canceled_status = canceled_status

    @property
    def model(self):
        return self.machine.lifecycle.model

    @property
    def kind(self):
        return self.machine.kind

    def _invalid(self, entity_id, message, **details):
        current_app.logger.warning("%s %s: %s", self.kind, entity_id, message)
        return InvalidState(message, **details)

    def _cas(self, entity_id, where, values):
        model = self.model
        stmt = update(model).where(model.id == entity_id, *where)
        res = db.session.execute(
            stmt.values(updated_at=datetime.utcnow(), **values).execution_options(synchronize_session=False)
        )
        return res.rowcount == 1

    def request_cancel(self, entity_id, requester, reason_code=None, reason_text=None):
        model = self.model
        entity = self.machine.get(entity_id)
        if requester.user_id != entity.user_id:
            raise PermissionDenied(f"Not your {self.kind}")

        now = datetime.utcnow()
        reason_code = (reason_code or "").strip()[:40] or "OTHER"
        reason_text = (reason_text or "").strip()[:255] or None
        ok = self._cas(
            entity_id,
            (
                model.cancel_status.in_((CancelStatus.NONE, CancelStatus.REJECTED)),
                model.status.in_(self.requestable_from),
            ),
            {
                "cancel_status": CancelStatus.REQUESTED,
                "cancel_reason_code": reason_code,
                "cancel_reason_text": reason_text,
                "cancel_requested_by": requester.user_id,
                "cancel_requested_at": now,
                "cancel_processed_at": None,
            },
        )
        if not ok:
            db.session.rollback()
            entity = self.machine.get(entity_id)
            if entity.cancel_status == CancelStatus.REQUESTED:
                raise self._invalid(entity_id, "A cancellation is already requested")
            raise self._invalid(
                entity_id,
                f"Cancellation cannot be requested while {self.kind} is {entity.status.value}",
                status=entity.status.value,
            )

        status = entity.status
        history.record(
            self.kind, entity_id, "cancel-request", status, status,
            actor=requester, description="Cancellation requested",
            snapshot={"reason_code": reason_code, "reason_text": reason_text},
        )
        db.session.commit()
        return self.machine.get(entity_id)

    def approve(self, entity_id, admin, effect=None):
        """Approve a pending request and cancel the entity in one conditional update."""
        model = self.model
        entity = self.machine.get(entity_id)
        if entity.cancel_status != CancelStatus.REQUESTED:
            raise self._invalid(entity_id, "No cancellation request to approve")

        now = datetime.utcnow()
        if entity.status == self.canceled_status:
            # canceled by another path meanwhile; just close out the request
            if not self._cas(
                entity_id,
                (model.cancel_status == CancelStatus.REQUESTED,),
                {"cancel_status": CancelStatus.APPROVED, "cancel_processed_at": now},
            ):
                db.session.rollback()
                raise self._invalid(entity_id, "No cancellation request to approve")
            history.record(
                self.kind, entity_id, "cancel-approve", entity.status, entity.status,
                actor=admin, description="Cancellation approved",
            )
            db.session.commit()
            return self.machine.transition(entity_id, self.canceled_status, self.canceled_status, actor=admin)

        return self.machine.transition(
            entity_id,
            entity.status,
            self.canceled_status,
            actor=admin,
            action="cancel-approve",
            description="Cancellation request approved",
            guard={"cancel_status": CancelStatus.REQUESTED},
            values={"cancel_status": CancelStatus.APPROVED, "cancel_processed_at": now},
            effect=effect,
        )

    def reject(self, entity_id, admin, reason_text=None):
        model = self.model
        entity = self.machine.get(entity_id)
        ok = self._cas(
            entity_id,
            (model.cancel_status == CancelStatus.REQUESTED,),
            {"cancel_status": CancelStatus.REJECTED, "cancel_processed_at": datetime.utcnow()},
        )
        if not ok:
            db.session.rollback()
            raise self._invalid(entity_id, "No cancellation request to reject")

        history.record(
            self.kind, entity_id, "cancel-reject", entity.status, entity.status,
            actor=admin, description="Cancellation request rejected",
            snapshot={"reason_text": reason_text} if reason_text else None,
        )
        db.session.commit()
        return self.machine.get(entity_id)

    def withdraw(self, entity_id, requester):
        model = self.model
        entity = self.machine.get(entity_id)
        ok = self._cas(
            entity_id,
            (
                model.cancel_status == CancelStatus.REQUESTED,
                model.cancel_requested_by == requester.user_id,
            ),
            {
                "cancel_status": CancelStatus.NONE,
                "cancel_reason_code": None,
                "cancel_reason_text": None,
                "cancel_requested_by": None,
                "cancel_requested_at": None,
                "cancel_processed_at": None,
            },
        )
        if not ok:
            db.session.rollback()
            entity = self.machine.get(entity_id)
            if entity.cancel_status == CancelStatus.REQUESTED:
                raise PermissionDenied("Only the requester can withdraw this cancellation")
            raise self._invalid(entity_id, "No cancellation request to withdraw")

        history.record(
            self.kind, entity_id, "cancel-withdraw", entity.status, entity.status,
            actor=requester, description="Cancellation request withdrawn",
        )
        db.session.commit()
        return self.machine.get(entity_id)
