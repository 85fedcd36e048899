"""Guarded status transitions for orders, rentals and applications.

Every status change goes through ``StateMachine.transition``, which is one
conditional UPDATE ("set to B only if currently A"). Losing a race is not an
error: the caller gets a ``TransitionResult`` with ``conflict=True`` and the
status the winner left behind.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, FrozenSet, Mapping, Optional

from flask import current_app
from sqlalchemy import update

from models import db
from models import (
    Application, ApplicationStatus,
    Order, OrderStatus,
    Rental, RentalStatus,
)
from engine import history
from engine.errors import EngineError, InvalidInput, InvalidState, NotFound
from engine.signals import notify_transition


@dataclass(frozen=True)
class Lifecycle:
    kind: str
    model: type
    statuses: type
    initial: object
    edges: Mapping[object, FrozenSet[object]]
    terminal: FrozenSet[object]

    def coerce(self, value):
        try:
            return self.statuses(value)
        except ValueError:
            raise InvalidInput(f"Unknown {self.kind} status: {value!r}")

    def can(self, current, nxt) -> bool:
        return nxt in self.edges.get(current, frozenset())


ORDER_LIFECYCLE = Lifecycle(
    kind="order",
    model=Order,
    statuses=OrderStatus,
    initial=OrderStatus.PENDING,
    edges={
        OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.CANCELED}),
        OrderStatus.PAID: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELED, OrderStatus.REFUNDED}),
        OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.REFUNDED}),
        OrderStatus.DELIVERED: frozenset({OrderStatus.CONFIRMED, OrderStatus.REFUNDED}),
    },
    terminal=frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELED, OrderStatus.REFUNDED}),
)

RENTAL_LIFECYCLE = Lifecycle(
    kind="rental",
    model=Rental,
    statuses=RentalStatus,
    initial=RentalStatus.CREATED,
    edges={
        RentalStatus.CREATED: frozenset({RentalStatus.PAID, RentalStatus.CANCELED}),
        RentalStatus.PAID: frozenset({RentalStatus.OUT, RentalStatus.CANCELED}),
        RentalStatus.OUT: frozenset({RentalStatus.RETURNED}),
    },
    terminal=frozenset({RentalStatus.RETURNED, RentalStatus.CANCELED}),
)

APPLICATION_LIFECYCLE = Lifecycle(
    kind="application",
    model=Application,
    statuses=ApplicationStatus,
    initial=ApplicationStatus.DRAFT,
    edges={
        ApplicationStatus.DRAFT: frozenset({ApplicationStatus.SUBMITTED, ApplicationStatus.CANCELED}),
        ApplicationStatus.SUBMITTED: frozenset({
            ApplicationStatus.REVIEWING, ApplicationStatus.ACCEPTED, ApplicationStatus.CANCELED,
        }),
        ApplicationStatus.REVIEWING: frozenset({ApplicationStatus.ACCEPTED, ApplicationStatus.CANCELED}),
        ApplicationStatus.ACCEPTED: frozenset({ApplicationStatus.IN_PROGRESS, ApplicationStatus.CANCELED}),
        ApplicationStatus.IN_PROGRESS: frozenset({ApplicationStatus.COMPLETED, ApplicationStatus.CANCELED}),
    },
    terminal=frozenset({ApplicationStatus.COMPLETED, ApplicationStatus.CANCELED}),
)


@dataclass
class TransitionResult:
    kind: str
    entity_id: int
    ok: bool
    from_status: Optional[object] = None
    to_status: Optional[object] = None
    conflict: bool = False
    idempotent: bool = False
    current: Optional[object] = None
    effect_error: Optional[str] = None

    def to_dict(self):
        out = {
            "ok": self.ok,
            "id": self.entity_id,
            "status": (self.current or self.to_status).value,
            "idempotent": self.idempotent,
        }
        if self.conflict:
            out["conflict"] = True
        if self.effect_error:
            out["effect_error"] = self.effect_error
        return out


Hook = Callable[[object, datetime], Optional[dict]]
Effect = Callable[[int, TransitionResult], None]


@dataclass
class StateMachine:
    lifecycle: Lifecycle
    # extra column values written with the status, keyed by target status
    stamps: Dict[object, Hook] = field(default_factory=dict)
    # checks that must pass before the conditional update is attempted
    preconditions: Dict[object, Callable[[object], None]] = field(default_factory=dict)
    # side effects run after commit; each must be safe to run twice
    effects: Dict[object, Effect] = field(default_factory=dict)

    @property
    def kind(self):
        return self.lifecycle.kind

    def get(self, entity_id):
        entity = db.session.get(self.lifecycle.model, entity_id)
        if entity is None:
            raise NotFound(f"{self.kind.capitalize()} not found")
        return entity

    def transition(
        self,
        entity_id,
        expected,
        nxt,
        actor=None,
        action="transition",
        description=None,
        snapshot=None,
        guard=None,
        values=None,
        effect: Optional[Effect] = None,
    ) -> TransitionResult:
        lc = self.lifecycle
        expected = lc.coerce(expected)
        nxt = lc.coerce(nxt)
        model = lc.model

        entity = self.get(entity_id)
        if entity.status == nxt:
            return TransitionResult(
                kind=self.kind, entity_id=entity_id, ok=True,
                from_status=nxt, to_status=nxt, idempotent=True,
            )

        if not lc.can(expected, nxt):
            current_app.logger.warning(
                "%s %s: illegal transition %s -> %s", self.kind, entity_id, expected.value, nxt.value
            )
            raise InvalidState(f"Cannot move {self.kind} from {expected.value} to {nxt.value}")

        check = self.preconditions.get(nxt)
        if check:
            check(entity)

        now = datetime.utcnow()
        row_values = {"status": nxt, "updated_at": now}
        stamp = self.stamps.get(nxt)
        if stamp:
            row_values.update(stamp(entity, now) or {})
        if values:
            row_values.update(values)

        stmt = update(model).where(model.id == entity_id, model.status == expected)
        for column, wanted in (guard or {}).items():
            stmt = stmt.where(getattr(model, column) == wanted)
        res = db.session.execute(
            stmt.values(**row_values).execution_options(synchronize_session=False)
        )

        if res.rowcount != 1:
            db.session.rollback()
            current = self.get(entity_id).status
            current_app.logger.warning(
                "%s %s: conflict on %s -> %s (now %s)",
                self.kind, entity_id, expected.value, nxt.value, current.value,
            )
            return TransitionResult(
                kind=self.kind, entity_id=entity_id, ok=False,
                from_status=expected, to_status=nxt, conflict=True, current=current,
            )

        history.record(
            self.kind, entity_id, action, expected, nxt,
            actor=actor, description=description, snapshot=snapshot,
        )
        db.session.commit()

        result = TransitionResult(
            kind=self.kind, entity_id=entity_id, ok=True, from_status=expected, to_status=nxt,
        )
        for fx in (self.effects.get(nxt), effect):
            if not fx:
                continue
            try:
                fx(entity_id, result)
            except EngineError as exc:
                # status is committed; the effect is left for reconcile
                db.session.rollback()
                result.effect_error = exc.code
                current_app.logger.error(
                    "%s %s: effect after %s -> %s failed: %s",
                    self.kind, entity_id, expected.value, nxt.value, exc.message,
                )

        notify_transition(result)
        return result
