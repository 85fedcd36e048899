from datetime import datetime

import pytest

from app import create_app
from config import TestConfig
from engine.history import Actor
from models import db as _db
from models.racket import Racket
from models.service_pass import ServicePass

CUSTOMER = Actor(user_id=1)
OTHER = Actor(user_id=2)
ADMIN = Actor(user_id=99, role="ADMIN")

# Monday; the default desk is open Mon-Fri 10:00-19:00
MONDAY_9AM = datetime(2026, 3, 2, 9, 0)
TUESDAY = "2026-03-03"
WEDNESDAY = "2026-03-04"
SATURDAY = "2026-03-07"


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db_session(app):
    return _db.session


@pytest.fixture
def engine(app):
    return app.extensions["booking_engine"]


def walk(machine, entity_id, *path, actor=ADMIN):
    """Drive an entity along legal edges, asserting each step commits."""
    result = None
    for nxt in path:
        current = machine.get(entity_id).status
        result = machine.transition(entity_id, current, nxt, actor=actor)
        assert result.ok and not result.conflict, result
    return result


class Factory:
    def __init__(self, engine):
        self.engine = engine

    def racket(self, stock=1, name="Pro Staff 97"):
        racket = Racket(name=name, stock=stock)
        _db.session.add(racket)
        _db.session.commit()
        return racket

    def order(self, user_id=1, total=50000, sessions=None):
        return self.engine.create_order(user_id, total, package_sessions=sessions)

    def rental(self, user_id=1, days=7, stock=1):
        racket = self.racket(stock=stock)
        return self.engine.create_rental(user_id, racket.id, days)

    def package_pass(self, user_id=1, sessions=3):
        order = self.order(user_id=user_id, total=sessions * 20000, sessions=sessions)
        walk(self.engine.orders, order.id, "paid")
        return order, ServicePass.query.filter_by(order_id=order.id).one()

    def submitted_application(self, user_id=1, order_id=None, day=TUESDAY, time="10:00", use_pass=False):
        app, _ = self.engine.desk.create_draft(user_id, order_id=order_id)
        actor = Actor(user_id=user_id)
        result = self.engine.desk.submit(app.id, actor, day, time, use_pass=use_pass, now=MONDAY_9AM)
        assert result.ok, result
        return self.engine.applications.get(app.id)


@pytest.fixture
def make(engine):
    return Factory(engine)


def principal_headers(actor):
    return {"X-User-Id": str(actor.user_id), "X-User-Role": actor.role}
