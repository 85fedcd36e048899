"""Service-pass ledger: issue, consume, revert, and admin corrections.

``remaining`` only moves through conditional updates that re-check the bound
they protect (``remaining > 0`` on debit, ``remaining < total`` on credit),
and each debit is pinned to one (pass, application) row, so retries and
concurrent callers cannot double-spend or double-refund.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update

from models import db
from models.service_pass import PassConsumption, PassEvent, PassStatus, ServicePass
from engine.errors import InsufficientBalance, InvalidInput, InvalidState, NotFound
from engine.idempotency import insert_once


@dataclass
class ConsumptionResult:
    pass_id: int
    application_id: int
    used_at: datetime
    remaining: int
    duplicate: bool = False

    def to_dict(self):
        return {
            "pass_id": self.pass_id,
            "application_id": self.application_id,
            "used_at": self.used_at.isoformat(),
            "remaining": self.remaining,
        }


@dataclass
class RevertResult:
    pass_id: int
    application_id: int
    remaining: int
    reverted: bool  # False when an earlier call already restored the session


@dataclass
class ExtendResult:
    pass_id: int
    ok: bool
    expires_at: Optional[datetime] = None
    conflict: bool = False


class PassLedger:
    def __init__(self, policy):
        self.policy = policy

    def get(self, pass_id) -> ServicePass:
        service_pass = db.session.get(ServicePass, pass_id)
        if service_pass is None:
            raise NotFound("Service pass not found")
        return service_pass

    def consumption_for(self, pass_id, application_id):
        return PassConsumption.query.filter_by(pass_id=pass_id, application_id=application_id).first()

    # ---------- issuance ----------
    def issue_for_order(self, order, now=None):
        """Issue the pass bought by a paid package order. Safe to call repeatedly."""
        if not order.package_sessions or order.package_sessions <= 0:
            return None, False
        now = now or datetime.utcnow()
        row = ServicePass(
            user_id=order.user_id,
            order_id=order.id,
            service_type=order.service_type or self.policy.default_service_type,
            total=order.package_sessions,
            remaining=order.package_sessions,
            status=PassStatus.ACTIVE,
            purchased_at=now,
            expires_at=now + timedelta(days=self.policy.pass_validity_days),
        )
        service_pass, created = insert_once(
            row, lambda: ServicePass.query.filter_by(order_id=order.id).first()
        )
        if created:
            db.session.commit()
        return service_pass, created

    def cancel_for_order(self, order_id) -> int:
        res = db.session.execute(
            update(ServicePass)
            .where(
                ServicePass.order_id == order_id,
                ServicePass.status.in_((PassStatus.ACTIVE, PassStatus.INACTIVE)),
            )
            .values(status=PassStatus.CANCELED, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        return res.rowcount

    # ---------- lookup ----------
    def find_active_pass_for(self, user_id, service_type=None, now=None) -> Optional[ServicePass]:
        """Soonest-expiring usable pass, so a user's entitlements drain FIFO."""
        now = now or datetime.utcnow()
        return (
            ServicePass.query
            .filter(
                ServicePass.user_id == user_id,
                ServicePass.service_type == (service_type or self.policy.default_service_type),
                ServicePass.status == PassStatus.ACTIVE,
                ServicePass.remaining > 0,
                ServicePass.expires_at >= now,
            )
            .order_by(ServicePass.expires_at.asc(), ServicePass.id.asc())
            .first()
        )

    # ---------- consume / revert ----------
    def check_usable(self, pass_id, now=None) -> ServicePass:
        """Raise unless ``consume`` could debit this pass right now."""
        now = now or datetime.utcnow()
        service_pass = self.get(pass_id)
        if service_pass.status != PassStatus.ACTIVE or service_pass.expires_at < now:
            raise InvalidState("Service pass is not usable", status=service_pass.status.value)
        if service_pass.remaining <= 0:
            raise InsufficientBalance("No sessions left on this pass", pass_id=pass_id)
        return service_pass

    def consume(self, pass_id, application_id, now=None) -> ConsumptionResult:
        now = now or datetime.utcnow()
        self.get(pass_id)

        consumption, created = insert_once(
            PassConsumption(pass_id=pass_id, application_id=application_id, used_at=now),
            lambda: self.consumption_for(pass_id, application_id),
        )
        if not created:
            return ConsumptionResult(
                pass_id=pass_id,
                application_id=application_id,
                used_at=consumption.used_at,
                remaining=self.get(pass_id).remaining,
                duplicate=True,
            )

        res = db.session.execute(
            update(ServicePass)
            .where(
                ServicePass.id == pass_id,
                ServicePass.status == PassStatus.ACTIVE,
                ServicePass.remaining > 0,
                ServicePass.expires_at >= now,
            )
            .values(remaining=ServicePass.remaining - 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            db.session.rollback()
            self.check_usable(pass_id, now)
            raise InsufficientBalance("No sessions left on this pass", pass_id=pass_id)

        db.session.commit()
        return ConsumptionResult(
            pass_id=pass_id,
            application_id=application_id,
            used_at=now,
            remaining=self.get(pass_id).remaining,
        )

    def revert(self, pass_id, application_id, now=None) -> RevertResult:
        now = now or datetime.utcnow()
        res = db.session.execute(
            update(PassConsumption)
            .where(
                PassConsumption.pass_id == pass_id,
                PassConsumption.application_id == application_id,
                PassConsumption.reverted.is_(False),
            )
            .values(reverted=True, reverted_at=now)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            db.session.rollback()
            if self.consumption_for(pass_id, application_id) is None:
                raise NotFound("No consumption recorded for this application")
            return RevertResult(pass_id, application_id, self.get(pass_id).remaining, reverted=False)

        credited = db.session.execute(
            update(ServicePass)
            .where(ServicePass.id == pass_id, ServicePass.remaining < ServicePass.total)
            .values(remaining=ServicePass.remaining + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if credited.rowcount != 1:
            db.session.rollback()
            raise InvalidState("Service pass is already at full balance", pass_id=pass_id)

        db.session.commit()
        return RevertResult(pass_id, application_id, self.get(pass_id).remaining, reverted=True)

    def revert_if_consumed(self, pass_id, application_id) -> Optional[RevertResult]:
        if self.consumption_for(pass_id, application_id) is None:
            return None
        return self.revert(pass_id, application_id)

    # ---------- admin ----------
    def adjust_sessions(self, pass_id, delta, admin_id=None, reason=None) -> ServicePass:
        """Grow or shrink a pass; total moves with remaining so used sessions stay counted."""
        try:
            delta = int(delta)
        except (TypeError, ValueError):
            raise InvalidInput("delta must be a non-zero integer")
        if delta == 0:
            raise InvalidInput("delta must be a non-zero integer")

        now = datetime.utcnow()
        res = db.session.execute(
            update(ServicePass)
            .where(
                ServicePass.id == pass_id,
                ServicePass.status != PassStatus.CANCELED,
                ServicePass.remaining + delta >= 0,
            )
            .values(
                total=ServicePass.total + delta,
                remaining=ServicePass.remaining + delta,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            db.session.rollback()
            service_pass = self.get(pass_id)
            if service_pass.status == PassStatus.CANCELED:
                raise InvalidState("Service pass is canceled")
            raise InvalidInput("Adjustment would leave a negative balance", remaining=service_pass.remaining)

        service_pass = db.session.get(ServicePass, pass_id, populate_existing=True)
        db.session.add(PassEvent(
            pass_id=pass_id,
            kind="adjust_sessions",
            from_value=str(service_pass.remaining - delta),
            to_value=str(service_pass.remaining),
            delta=delta,
            reason=reason,
            admin_id=admin_id,
        ))
        db.session.commit()
        return self.get(pass_id)

    def extend(self, pass_id, days=None, new_expiry=None, admin_id=None, reason=None, now=None) -> ExtendResult:
        now = now or datetime.utcnow()
        service_pass = self.get(pass_id)
        if service_pass.status == PassStatus.CANCELED:
            raise InvalidState("Service pass is canceled")

        current = service_pass.expires_at
        if new_expiry is not None:
            target = new_expiry
        elif days:
            base = current if current > now else now
            target = base + timedelta(days=int(days))
        else:
            raise InvalidInput("Provide days or new_expiry")

        values = {"expires_at": target, "updated_at": now}
        if service_pass.status == PassStatus.EXPIRED and target > now:
            values["status"] = PassStatus.ACTIVE

        res = db.session.execute(
            update(ServicePass)
            .where(ServicePass.id == pass_id, ServicePass.expires_at == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            db.session.rollback()
            return ExtendResult(pass_id=pass_id, ok=False, conflict=True)

        db.session.add(PassEvent(
            pass_id=pass_id,
            kind="extend_expiry",
            from_value=current.isoformat(),
            to_value=target.isoformat(),
            reason=reason,
            admin_id=admin_id,
        ))
        db.session.commit()
        return ExtendResult(pass_id=pass_id, ok=True, expires_at=target)

    def expire_due(self, now=None) -> int:
        now = now or datetime.utcnow()
        res = db.session.execute(
            update(ServicePass)
            .where(ServicePass.status == PassStatus.ACTIVE, ServicePass.expires_at < now)
            .values(status=PassStatus.EXPIRED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        return res.rowcount
