from datetime import datetime, timedelta

import pytest

from conftest import ADMIN, walk
from engine.errors import InsufficientBalance, InvalidInput, InvalidState, NotFound
from models import db
from models.application import Application
from models.service_pass import PassConsumption, PassEvent, PassStatus, ServicePass


def _pass(user_id=1, total=10, remaining=3, expires_in_days=30, status=PassStatus.ACTIVE):
    now = datetime.utcnow()
    service_pass = ServicePass(
        user_id=user_id, service_type="stringing", total=total, remaining=remaining,
        status=status, purchased_at=now, expires_at=now + timedelta(days=expires_in_days),
    )
    db.session.add(service_pass)
    db.session.commit()
    return service_pass


def _application(user_id=1):
    app = Application(user_id=user_id)
    db.session.add(app)
    db.session.commit()
    return app


def test_retried_consume_debits_once(engine):
    service_pass = _pass(total=10, remaining=3)
    app = _application()

    first = engine.passes.consume(service_pass.id, app.id)
    second = engine.passes.consume(service_pass.id, app.id)

    assert first.to_dict() == second.to_dict()
    assert first.remaining == 2
    assert second.duplicate is True
    assert engine.passes.get(service_pass.id).remaining == 2
    assert PassConsumption.query.filter_by(pass_id=service_pass.id, application_id=app.id).count() == 1


def test_consume_fails_when_empty(engine):
    service_pass = _pass(total=1, remaining=0)
    app = _application()

    with pytest.raises(InsufficientBalance):
        engine.passes.consume(service_pass.id, app.id)

    assert engine.passes.get(service_pass.id).remaining == 0
    assert PassConsumption.query.count() == 0


def test_consume_rejects_expired_pass(engine):
    service_pass = _pass(expires_in_days=-1)
    app = _application()

    with pytest.raises(InvalidState):
        engine.passes.consume(service_pass.id, app.id)
    assert engine.passes.get(service_pass.id).remaining == 3


def test_consume_unknown_pass(engine):
    with pytest.raises(NotFound):
        engine.passes.consume(12345, 1)


def test_revert_is_idempotent(engine):
    service_pass = _pass(total=10, remaining=3)
    app = _application()
    engine.passes.consume(service_pass.id, app.id)

    first = engine.passes.revert(service_pass.id, app.id)
    second = engine.passes.revert(service_pass.id, app.id)

    assert first.reverted is True
    assert second.reverted is False
    assert first.remaining == second.remaining == 3
    row = engine.passes.consumption_for(service_pass.id, app.id)
    assert row.reverted is True and row.reverted_at is not None


def test_revert_without_consumption(engine):
    service_pass = _pass()
    with pytest.raises(NotFound):
        engine.passes.revert(service_pass.id, 777)
    assert engine.passes.revert_if_consumed(service_pass.id, 777) is None


def test_consume_after_revert_is_a_replay(engine):
    service_pass = _pass(total=10, remaining=3)
    app = _application()
    engine.passes.consume(service_pass.id, app.id)
    engine.passes.revert(service_pass.id, app.id)

    again = engine.passes.consume(service_pass.id, app.id)

    assert again.duplicate is True
    assert engine.passes.get(service_pass.id).remaining == 3


def test_balance_stays_within_bounds(engine):
    service_pass = _pass(total=2, remaining=2)
    apps = [_application() for _ in range(3)]

    engine.passes.consume(service_pass.id, apps[0].id)
    engine.passes.consume(service_pass.id, apps[1].id)
    with pytest.raises(InsufficientBalance):
        engine.passes.consume(service_pass.id, apps[2].id)

    for app in apps[:2]:
        engine.passes.revert(service_pass.id, app.id)
        engine.passes.revert(service_pass.id, app.id)

    refreshed = engine.passes.get(service_pass.id)
    assert 0 <= refreshed.remaining <= refreshed.total
    assert refreshed.remaining == 2


def test_issue_for_order_once(engine, make):
    order = make.order(sessions=5)
    walk(engine.orders, order.id, "paid")

    again, created = engine.passes.issue_for_order(engine.orders.get(order.id))

    assert created is False
    assert ServicePass.query.filter_by(order_id=order.id).count() == 1
    assert again.total == again.remaining == 5
    assert again.status == PassStatus.ACTIVE


def test_plain_order_issues_no_pass(engine, make):
    order = make.order(sessions=None)
    walk(engine.orders, order.id, "paid")
    assert ServicePass.query.count() == 0


def test_find_active_pass_prefers_soonest_expiry(engine):
    later = _pass(expires_in_days=90)
    sooner = _pass(expires_in_days=10)
    _pass(expires_in_days=5, remaining=0)
    _pass(expires_in_days=3, status=PassStatus.CANCELED)
    _pass(user_id=2, expires_in_days=1)

    found = engine.passes.find_active_pass_for(1, "stringing")

    assert found.id == sooner.id
    assert found.id != later.id


def test_adjust_sessions_moves_total_and_remaining(engine):
    service_pass = _pass(total=10, remaining=3)

    adjusted = engine.passes.adjust_sessions(service_pass.id, 2, admin_id=ADMIN.user_id, reason="goodwill")
    assert (adjusted.total, adjusted.remaining) == (12, 5)

    with pytest.raises(InvalidInput):
        engine.passes.adjust_sessions(service_pass.id, -6, admin_id=ADMIN.user_id)
    with pytest.raises(InvalidInput):
        engine.passes.adjust_sessions(service_pass.id, 0)

    event = PassEvent.query.filter_by(pass_id=service_pass.id).one()
    assert (event.kind, event.delta, event.from_value, event.to_value) == ("adjust_sessions", 2, "3", "5")


def test_extend_reactivates_expired_pass(engine):
    service_pass = _pass(expires_in_days=-2, status=PassStatus.EXPIRED)

    result = engine.passes.extend(service_pass.id, days=30, admin_id=ADMIN.user_id, reason="late pickup")

    assert result.ok
    refreshed = engine.passes.get(service_pass.id)
    assert refreshed.status == PassStatus.ACTIVE
    assert refreshed.expires_at > datetime.utcnow() + timedelta(days=29)


def test_extend_requires_a_target(engine):
    service_pass = _pass()
    with pytest.raises(InvalidInput):
        engine.passes.extend(service_pass.id)


def test_expire_due(engine):
    stale = _pass(expires_in_days=-1)
    fresh = _pass(expires_in_days=10)

    assert engine.passes.expire_due() == 1
    assert engine.passes.get(stale.id).status == PassStatus.EXPIRED
    assert engine.passes.get(fresh.id).status == PassStatus.ACTIVE
