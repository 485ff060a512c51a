"""
Shared fixtures.

The app runs on in-memory SQLite with the scheduler off and mail suppressed.
Time comes from a FixedClock the tests move by hand, and push messages land
in a FakePushService instead of a gateway.
"""
import random
from datetime import datetime

import pytest
from flask_jwt_extended import create_access_token

from bookshare import create_app
from bookshare.config import Config
from bookshare.errors import DeliveryFailure
from bookshare.extensions import db
from bookshare.models.book import Book
from bookshare.models.transaction import Transaction
from bookshare.models.user import User
from bookshare.utils.clock import FixedClock


class ConfigForTests(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    JWT_SECRET_KEY = "test-jwt-secret-with-enough-length-for-hs256"
    MAIL_SUPPRESS_SEND = True
    MAIL_DEFAULT_SENDER = "noreply@bookshare.test"
    SCHEDULER_ENABLED = False
    PUSH_GATEWAY_URL = ""


class FakePushService:
    def __init__(self):
        self.sent = []
        self.fail_for = set()

    def send(self, token, title, body, data=None):
        if token in self.fail_for:
            raise DeliveryFailure(f"token {token} rejected")
        self.sent.append({"token": token, "title": title, "body": body, "data": data or {}})
        return True


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 3, 1, 12, 0, 0))


@pytest.fixture
def push():
    return FakePushService()


@pytest.fixture
def app(clock, push):
    app = create_app(ConfigForTests, clock=clock, push_service=push, rng=random.Random(1234))
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def service(app):
    return app.extensions["transaction_service"]


@pytest.fixture
def dispatcher(app):
    return app.extensions["notification_service"]


@pytest.fixture
def sweeps(app):
    return app.extensions["sweep_service"]


@pytest.fixture
def users(app):
    rows = [
        User(id="u1", name="Alex Owner", email="alex@example.com", device_token="tok-u1"),
        User(id="u2", name="Sam Borrower", email="sam@example.com", device_token="tok-u2"),
        User(id="u3", name="Outsider"),
    ]
    db.session.add_all(rows)
    db.session.commit()
    return {u.id: u for u in rows}


@pytest.fixture
def book(users):
    b = Book(id="b1", title="Clean Code", author="Robert C. Martin", owner_id="u1",
             group_id="g1", lending_price_per_week=40)
    db.session.add(b)
    db.session.commit()
    return b


@pytest.fixture
def pending(service, book):
    return service.create_request("b1", "u2", "u1", "g1", "2_WEEKS", message="Can I borrow it?")


@pytest.fixture
def approved(service, pending):
    return service.approve(pending.id, "u1")


@pytest.fixture
def active(service, approved):
    return service.confirm_handover(approved.id, "u1", approved.handover_otp)


@pytest.fixture
def returned(service, active):
    return service.confirm_return(active.id, "u2", active.return_otp)


@pytest.fixture
def auth_headers(app):
    def _headers(user_id, role="user"):
        token = create_access_token(identity=user_id, additional_claims={"role": role})
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def snapshot(app):
    def _snapshot(txn_id):
        """Column values of a transaction as stored right now."""
        db.session.expire_all()
        txn = db.session.get(Transaction, txn_id)
        return {c.key: getattr(txn, c.key) for c in Transaction.__table__.columns}
    return _snapshot
