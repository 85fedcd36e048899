"""Customer-facing application operations: drafts, submission, stale cleanup."""
from datetime import datetime, timedelta

from flask import current_app

from models import db
from models import Application, ApplicationStatus, Order, OrderStatus, Rental, RentalStatus
from engine import history
from engine.errors import InsufficientBalance, InvalidInput, NotFound, PermissionDenied
from engine.history import SYSTEM
from engine.idempotency import insert_once
from engine.slots import parse_date

_DEAD_ORDER = (OrderStatus.CANCELED, OrderStatus.REFUNDED)


class ApplicationDesk:
    def __init__(self, engine):
        self.engine = engine

    @property
    def machine(self):
        return self.engine.applications

    def _open_draft(self, order_id, rental_id):
        q = Application.query.filter_by(status=ApplicationStatus.DRAFT)
        if order_id is not None:
            found = q.filter_by(order_id=order_id).first()
            if found is not None:
                return found
        if rental_id is not None:
            return q.filter_by(rental_id=rental_id).first()
        return None

    def _check_link(self, model, link_id, user_id, dead_statuses):
        if link_id is None:
            return None
        entity = db.session.get(model, link_id)
        if entity is None:
            raise NotFound(f"{model.__name__} not found")
        if entity.user_id != user_id:
            raise PermissionDenied(f"Not your {model.__name__.lower()}")
        if entity.status in dead_statuses:
            raise InvalidInput(f"{model.__name__} is {entity.status.value}")
        return entity

    def create_draft(self, user_id, order_id=None, rental_id=None, service_type=None, actor=None):
        """Open a draft, or hand back the draft already open for the same order/rental.

        Returns ``(application, created)``.
        """
        order = self._check_link(Order, order_id, user_id, _DEAD_ORDER)
        self._check_link(Rental, rental_id, user_id, (RentalStatus.CANCELED,))

        existing = self._open_draft(order_id, rental_id)
        if existing is not None:
            return existing, False

        service_type = (
            service_type
            or (order.service_type if order is not None else None)
            or self.engine.policy.default_service_type
        )
        app, created = insert_once(
            Application(
                user_id=user_id,
                order_id=order_id,
                rental_id=rental_id,
                service_type=service_type,
                status=ApplicationStatus.DRAFT,
            ),
            lambda: self._open_draft(order_id, rental_id),
        )
        if not created:
            return app, False

        history.record("application", app.id, "create", None, ApplicationStatus.DRAFT, actor=actor)
        db.session.commit()
        return app, True

    def submit(self, application_id, actor, preferred_date, preferred_time, use_pass=False, now=None):
        now = now or datetime.utcnow()
        app = self.machine.get(application_id)
        if app.user_id != actor.user_id:
            raise PermissionDenied("Not your application")

        if app.status == ApplicationStatus.SUBMITTED:
            # retried submit; the transition reports it as already done
            return self.machine.transition(application_id, ApplicationStatus.DRAFT, ApplicationStatus.SUBMITTED)
        if preferred_date is None or not preferred_time:
            raise InvalidInput("preferred_date and preferred_time are required")

        day = parse_date(preferred_date)
        self.engine.slots.validate_booking_window(day, preferred_time, now).raise_for_rejection()

        values = {"preferred_date": day, "preferred_time": preferred_time}
        if use_pass:
            service_pass = self.engine.passes.find_active_pass_for(app.user_id, app.service_type, now)
            if service_pass is None:
                raise InsufficientBalance("No active pass with sessions left")
            values["pass_id"] = service_pass.id

        return self.machine.transition(
            application_id,
            ApplicationStatus.DRAFT,
            ApplicationStatus.SUBMITTED,
            actor=actor,
            action="submit",
            description="Application submitted",
            snapshot={"preferred_date": day, "preferred_time": preferred_time, "pass_id": values.get("pass_id")},
            values=values,
        )

    def cleanup_stale_drafts(self, now=None) -> int:
        now = now or datetime.utcnow()
        cutoff = now - timedelta(days=self.engine.policy.draft_stale_days)
        stale_ids = [
            row.id for row in (
                Application.query
                .filter(Application.status == ApplicationStatus.DRAFT, Application.created_at < cutoff)
                .order_by(Application.id.asc())
                .all()
            )
        ]

        canceled = 0
        for app_id in stale_ids:
            result = self.machine.transition(
                app_id, ApplicationStatus.DRAFT, ApplicationStatus.CANCELED,
                actor=SYSTEM, action="expire-draft", description="Stale draft closed",
            )
            if result.ok and not result.idempotent:
                canceled += 1
        if canceled:
            current_app.logger.info("closed %s stale drafts", canceled)
        return canceled
