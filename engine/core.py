"""Engine facade: one object per app wiring the ledgers to the three lifecycles.

Effects registered here run after a transition has committed. Each one is
idempotent, so replaying it (``reconcile``) after a crash between the status
commit and the effect is always safe.
"""
from datetime import timedelta

from flask import current_app
from sqlalchemy import update

from models import db
from models import (
    Application, ApplicationStatus,
    Order, OrderStatus,
    Racket,
    Rental, RentalStatus,
)
from models.points import PointsTransactionType
from engine import history
from engine.applications import ApplicationDesk
from engine.cancellation import CancellationWorkflow
from engine.errors import InvalidInput, InvalidState, NotFound, PermissionDenied
from engine.history import SYSTEM
from engine.idempotency import IdempotencyGuard
from engine.passes import PassLedger
from engine.points import PointsLedger
from engine.slots import SlotEngine
from engine.state_machine import (
    APPLICATION_LIFECYCLE,
    ORDER_LIFECYCLE,
    RENTAL_LIFECYCLE,
    StateMachine,
    TransitionResult,
)


def reward_ref(order_id):
    return f"order:{order_id}:reward"


class BookingEngine:
    def __init__(self, policy):
        self.policy = policy
        self.slots = SlotEngine(policy.desk_timezone)
        self.passes = PassLedger(policy)
        self.points = PointsLedger()

        self.orders = StateMachine(
            ORDER_LIFECYCLE,
            stamps={OrderStatus.PAID: lambda order, now: {"paid_at": now}},
            effects={
                OrderStatus.PAID: self._issue_pass,
                OrderStatus.CANCELED: self._unwind_order,
                OrderStatus.REFUNDED: self._unwind_order,
                OrderStatus.CONFIRMED: self._reward_order,
            },
        )
        self.rentals = StateMachine(
            RENTAL_LIFECYCLE,
            stamps={
                RentalStatus.PAID: lambda rental, now: {"paid_at": now},
                RentalStatus.OUT: lambda rental, now: {
                    "out_at": now, "due_at": now + timedelta(days=rental.days),
                },
                RentalStatus.RETURNED: lambda rental, now: {"returned_at": now},
            },
            preconditions={RentalStatus.OUT: self._check_stock},
            effects={
                RentalStatus.OUT: self._take_stock,
                RentalStatus.RETURNED: self._restock,
            },
        )
        self.applications = StateMachine(
            APPLICATION_LIFECYCLE,
            stamps={
                ApplicationStatus.SUBMITTED: lambda app, now: {"submitted_at": now},
                ApplicationStatus.COMPLETED: lambda app, now: {"completed_at": now},
            },
            preconditions={ApplicationStatus.IN_PROGRESS: self._check_pass_balance},
            effects={
                ApplicationStatus.IN_PROGRESS: self._consume_pass,
                ApplicationStatus.CANCELED: self._revert_pass,
            },
        )

        self.machines = {
            "order": self.orders,
            "rental": self.rentals,
            "application": self.applications,
        }
        self.cancellations = {
            "order": CancellationWorkflow(
                self.orders, (OrderStatus.PENDING, OrderStatus.PAID), OrderStatus.CANCELED,
            ),
            "rental": CancellationWorkflow(
                self.rentals, (RentalStatus.CREATED, RentalStatus.PAID), RentalStatus.CANCELED,
            ),
            "application": CancellationWorkflow(
                self.applications,
                (ApplicationStatus.SUBMITTED, ApplicationStatus.REVIEWING, ApplicationStatus.ACCEPTED),
                ApplicationStatus.CANCELED,
            ),
        }

        self.desk = ApplicationDesk(self)

        ttl = policy.idempotency_ttl_hours
        self.order_guard = IdempotencyGuard("order-create", ttl)
        self.rental_pay_guard = IdempotencyGuard("rental-pay", ttl)
        self.webhook_guard = IdempotencyGuard("stripe-webhook", ttl)

    def machine(self, kind) -> StateMachine:
        try:
            return self.machines[kind]
        except KeyError:
            raise NotFound(f"Unknown entity kind: {kind}")

    def cancellation(self, kind) -> CancellationWorkflow:
        try:
            return self.cancellations[kind]
        except KeyError:
            raise NotFound(f"Unknown entity kind: {kind}")

    def guards(self):
        return (self.order_guard, self.rental_pay_guard, self.webhook_guard)

    def reconcile(self, kind, entity_id) -> TransitionResult:
        """Re-run the effect registered for the entity's current status."""
        machine = self.machine(kind)
        status = machine.get(entity_id).status
        result = TransitionResult(
            kind=kind, entity_id=entity_id, ok=True,
            from_status=status, to_status=status, idempotent=True,
        )
        fx = machine.effects.get(status)
        if fx:
            fx(entity_id, result)
        return result

    # ---------- orders ----------
    def create_order(self, user_id, total_amount, package_sessions=None, service_type=None, actor=None) -> Order:
        try:
            total_amount = int(total_amount)
        except (TypeError, ValueError):
            raise InvalidInput("total_amount must be an integer")
        if total_amount < 0:
            raise InvalidInput("total_amount must not be negative")
        if package_sessions is not None:
            try:
                package_sessions = int(package_sessions)
            except (TypeError, ValueError):
                raise InvalidInput("package_sessions must be an integer")
            if package_sessions <= 0:
                raise InvalidInput("package_sessions must be positive")

        order = Order(
            user_id=user_id,
            total_amount=total_amount,
            package_sessions=package_sessions,
            service_type=(service_type or self.policy.default_service_type) if package_sessions else service_type,
            status=ORDER_LIFECYCLE.initial,
        )
        db.session.add(order)
        db.session.flush()
        history.record("order", order.id, "create", None, order.status, actor=actor)
        db.session.commit()
        return order

    def confirm_order(self, order_id, actor) -> TransitionResult:
        """Customer purchase confirmation; the points reward follows as an effect."""
        order = self.orders.get(order_id)
        if not actor.is_admin and order.user_id != actor.user_id:
            raise PermissionDenied("Not your order")
        return self.orders.transition(
            order_id, OrderStatus.DELIVERED, OrderStatus.CONFIRMED,
            actor=actor, action="confirm", description="Purchase confirmed",
        )

    def _issue_pass(self, order_id, result):
        order = self.orders.get(order_id)
        self.passes.issue_for_order(order)

    def _unwind_order(self, order_id, result):
        self.passes.cancel_for_order(order_id)
        open_ids = [
            row.id for row in (
                Application.query
                .filter(
                    Application.order_id == order_id,
                    Application.status.notin_(tuple(APPLICATION_LIFECYCLE.terminal)),
                )
                .all()
            )
        ]
        for app_id in open_ids:
            app = self.applications.get(app_id)
            outcome = self.applications.transition(
                app_id, app.status, ApplicationStatus.CANCELED,
                actor=SYSTEM, action="cascade-cancel",
                description=f"Order {order_id} was {result.to_status.value}",
            )
            if outcome.conflict:
                current_app.logger.warning(
                    "application %s changed during order %s cascade (now %s)",
                    app_id, order_id, outcome.current.value,
                )

    def _reward_order(self, order_id, result):
        order = self.orders.get(order_id)
        amount = int(order.total_amount * self.policy.points_reward_rate)
        if amount <= 0:
            return
        self.points.post(
            order.user_id, amount, PointsTransactionType.ACCRUAL,
            ref_key=reward_ref(order_id), reason="Purchase confirmation reward",
        )

    # ---------- rentals ----------
    def create_rental(self, user_id, racket_id, days, amount=0, actor=None) -> Rental:
        try:
            days = int(days)
        except (TypeError, ValueError):
            raise InvalidInput("days must be an integer")
        if days not in self.policy.rental_allowed_days:
            raise InvalidInput(
                "Unsupported rental period", allowed=list(self.policy.rental_allowed_days),
            )
        if db.session.get(Racket, racket_id) is None:
            raise NotFound("Racket not found")

        rental = Rental(
            user_id=user_id, racket_id=racket_id, days=days,
            amount=int(amount or 0), status=RENTAL_LIFECYCLE.initial,
        )
        db.session.add(rental)
        db.session.flush()
        history.record("rental", rental.id, "create", None, rental.status, actor=actor)
        db.session.commit()
        return rental

    def pay_rental(self, rental_id, actor) -> TransitionResult:
        rental = self.rentals.get(rental_id)
        if not actor.is_admin and rental.user_id != actor.user_id:
            raise PermissionDenied("Not your rental")
        return self.rentals.transition(
            rental_id, RentalStatus.CREATED, RentalStatus.PAID,
            actor=actor, action="pay", description="Rental paid",
        )

    def _check_stock(self, rental):
        if rental.stock_reserved:
            return
        racket = db.session.get(Racket, rental.racket_id)
        if racket is None or racket.stock <= 0:
            raise InvalidState("Racket is out of stock", racket_id=rental.racket_id)

    def _take_stock(self, rental_id, result):
        rental = self.rentals.get(rental_id)
        flagged = db.session.execute(
            update(Rental)
            .where(Rental.id == rental_id, Rental.stock_reserved.is_(False))
            .values(stock_reserved=True)
            .execution_options(synchronize_session=False)
        )
        if flagged.rowcount != 1:
            db.session.rollback()
            return
        taken = db.session.execute(
            update(Racket)
            .where(Racket.id == rental.racket_id, Racket.stock > 0)
            .values(stock=Racket.stock - 1)
            .execution_options(synchronize_session=False)
        )
        if taken.rowcount != 1:
            db.session.rollback()
            current_app.logger.error(
                "rental %s dispatched but racket %s has no stock left", rental_id, rental.racket_id,
            )
            return
        db.session.commit()

    def _restock(self, rental_id, result):
        rental = self.rentals.get(rental_id)
        flagged = db.session.execute(
            update(Rental)
            .where(Rental.id == rental_id, Rental.stock_reserved.is_(True))
            .values(stock_reserved=False)
            .execution_options(synchronize_session=False)
        )
        if flagged.rowcount != 1:
            db.session.rollback()
            return
        db.session.execute(
            update(Racket)
            .where(Racket.id == rental.racket_id)
            .values(stock=Racket.stock + 1)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()

    # ---------- applications ----------
    def _check_pass_balance(self, application):
        if application.pass_id is None:
            return
        if self.passes.consumption_for(application.pass_id, application.id) is not None:
            return
        # same conditions consume applies, checked before the status moves
        self.passes.check_usable(application.pass_id)

    def _consume_pass(self, application_id, result):
        app = self.applications.get(application_id)
        if app.pass_id is not None:
            self.passes.consume(app.pass_id, application_id)

    def _revert_pass(self, application_id, result):
        app = self.applications.get(application_id)
        if app.pass_id is not None:
            self.passes.revert_if_consumed(app.pass_id, application_id)


def get_engine() -> BookingEngine:
    return current_app.extensions["booking_engine"]
