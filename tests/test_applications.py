from datetime import datetime, timedelta

import pytest

from conftest import ADMIN, CUSTOMER, MONDAY_9AM, OTHER, TUESDAY, walk
from engine.errors import InsufficientBalance, InvalidInput, InvalidState, PermissionDenied
from engine.history import history_for
from engine.idempotency import insert_once
from models import db
from models.application import Application, ApplicationStatus
from models.service_pass import PassStatus


def test_one_draft_per_order(engine, make):
    order = make.order(sessions=2)

    first, created = engine.desk.create_draft(1, order_id=order.id)
    again, created_again = engine.desk.create_draft(1, order_id=order.id)

    assert created and not created_again
    assert first.id == again.id
    assert Application.query.filter_by(order_id=order.id).count() == 1
    assert first.service_type == "stringing"


def test_draft_uniqueness_is_enforced_by_the_store(engine, make):
    rental = make.rental()
    engine.desk.create_draft(1, rental_id=rental.id)

    # a writer that skipped the lookup still ends up with the existing draft
    duplicate = Application(user_id=1, rental_id=rental.id, status=ApplicationStatus.DRAFT)
    _, created = insert_once(
        duplicate,
        lambda: Application.query.filter_by(rental_id=rental.id, status=ApplicationStatus.DRAFT).first(),
    )
    assert not created
    assert Application.query.filter_by(rental_id=rental.id).count() == 1


def test_new_draft_allowed_once_previous_is_submitted(engine, make):
    order = make.order(sessions=2)
    first = make.submitted_application(order_id=order.id)

    second, created = engine.desk.create_draft(1, order_id=order.id)

    assert created and second.id != first.id


def test_draft_links_are_checked(engine, make):
    order = make.order(user_id=1)
    with pytest.raises(PermissionDenied):
        engine.desk.create_draft(2, order_id=order.id)

    walk(engine.orders, order.id, "canceled")
    with pytest.raises(InvalidInput):
        engine.desk.create_draft(1, order_id=order.id)


def test_submit_records_slot_and_history(engine, make):
    app = make.submitted_application(time="14:30")

    assert app.status == ApplicationStatus.SUBMITTED
    assert app.preferred_date.isoformat() == TUESDAY
    assert app.preferred_time == "14:30"
    assert app.submitted_at is not None
    assert [h.action for h in history_for("application", app.id)] == ["create", "submit"]


def test_submit_twice_is_idempotent(engine, make):
    app = make.submitted_application()
    again = engine.desk.submit(app.id, CUSTOMER, TUESDAY, "10:00", now=MONDAY_9AM)
    assert again.ok and again.idempotent


def test_submit_checks_owner_and_fields(engine):
    app, _ = engine.desk.create_draft(1)
    with pytest.raises(PermissionDenied):
        engine.desk.submit(app.id, OTHER, TUESDAY, "10:00", now=MONDAY_9AM)
    with pytest.raises(InvalidInput):
        engine.desk.submit(app.id, CUSTOMER, TUESDAY, "", now=MONDAY_9AM)


def test_submit_with_pass_requires_balance(engine, make):
    app, _ = engine.desk.create_draft(1)
    with pytest.raises(InsufficientBalance):
        engine.desk.submit(app.id, CUSTOMER, TUESDAY, "10:00", use_pass=True, now=MONDAY_9AM)


def test_work_start_consumes_reserved_pass(engine, make):
    order, service_pass = make.package_pass(sessions=1)
    app = make.submitted_application(order_id=order.id, use_pass=True)
    assert app.pass_id == service_pass.id

    walk(engine.applications, app.id, "reviewing", "accepted", "in_progress", "completed")

    assert engine.passes.get(service_pass.id).remaining == 0
    assert engine.applications.get(app.id).completed_at is not None


def test_work_start_blocked_when_pass_ran_dry(engine, make):
    order, service_pass = make.package_pass(sessions=1)
    engine.slots.update_config({"capacity": 2}, admin_id=ADMIN.user_id)
    first = make.submitted_application(order_id=order.id, use_pass=True)
    second = make.submitted_application(user_id=1, time="11:00", use_pass=True)
    walk(engine.applications, first.id, "accepted", "in_progress")

    engine.applications.transition(second.id, "submitted", "accepted", actor=ADMIN)
    with pytest.raises(InsufficientBalance):
        engine.applications.transition(second.id, "accepted", "in_progress", actor=ADMIN)
    assert engine.applications.get(second.id).status == ApplicationStatus.ACCEPTED


def test_work_start_blocked_when_reserved_pass_was_canceled(engine, make):
    order, service_pass = make.package_pass(sessions=2)
    # booked without linking the order, so the refund does not cascade to it
    app = make.submitted_application(use_pass=True)
    assert app.pass_id == service_pass.id
    walk(engine.orders, order.id, "refunded")
    assert engine.passes.get(service_pass.id).status == PassStatus.CANCELED

    walk(engine.applications, app.id, "accepted")
    with pytest.raises(InvalidState):
        engine.applications.transition(app.id, "accepted", "in_progress", actor=ADMIN)

    assert engine.applications.get(app.id).status == ApplicationStatus.ACCEPTED
    assert engine.passes.get(service_pass.id).remaining == 2
    assert engine.passes.consumption_for(service_pass.id, app.id) is None


def test_work_start_blocked_when_reserved_pass_expired(engine, make):
    _, service_pass = make.package_pass(sessions=1)
    app = make.submitted_application(use_pass=True)
    service_pass.expires_at = datetime.utcnow() - timedelta(minutes=1)
    db.session.commit()

    walk(engine.applications, app.id, "accepted")
    with pytest.raises(InvalidState):
        engine.applications.transition(app.id, "accepted", "in_progress", actor=ADMIN)
    assert engine.applications.get(app.id).status == ApplicationStatus.ACCEPTED


def test_cleanup_stale_drafts(engine, make):
    old, _ = engine.desk.create_draft(1)
    fresh, _ = engine.desk.create_draft(2)
    submitted = make.submitted_application(user_id=3)
    old.created_at = datetime.utcnow() - timedelta(days=30)
    submitted.created_at = datetime.utcnow() - timedelta(days=30)
    db.session.commit()

    assert engine.desk.cleanup_stale_drafts() == 1
    assert engine.applications.get(old.id).status == ApplicationStatus.CANCELED
    assert engine.applications.get(fresh.id).status == ApplicationStatus.DRAFT
    assert engine.applications.get(submitted.id).status == ApplicationStatus.SUBMITTED
    assert engine.desk.cleanup_stale_drafts() == 0
