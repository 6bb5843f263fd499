import os
# Ensure the app factory picks the Testing config & SQLite memory DB
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("PAYMONGO_WEBHOOK_SECRET", "whsk_test_secret")
# ProductionConfig reads these at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import json

import pytest
from careersync import create_app
from careersync.extensions import db
from careersync.models import UserProfile
from careersync.services.tokens import issue_token
from careersync.services.webhook_signature import SIGNATURE_HEADER, compute_signature

WEBHOOK_SECRET = "whsk_test_secret"

@pytest.fixture(scope="session")
def app():
    app = create_app()
    app.config.update(
        TESTING=True,
        APP_BASE_URL="http://example.test",
        PAYMONGO_WEBHOOK_SECRET=WEBHOOK_SECRET,
        PAYMONGO_SECRET_KEY=None,
        STATIC_QRPH_DATA=None,
        REDIS_URL=None,
    )
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()

@pytest.fixture()
def client(app):
    return app.test_client()

@pytest.fixture(autouse=True)
def _db_clean(app):
    # Clean BEFORE each test
    with app.app_context():
        db.session.rollback()
        for tbl in reversed(db.metadata.sorted_tables):
            db.session.execute(tbl.delete())
        db.session.commit()
    yield
    # And AFTER each test (keeps state hermetic even if a test fails mid-transaction)
    with app.app_context():
        db.session.rollback()
        for tbl in reversed(db.metadata.sorted_tables):
            db.session.execute(tbl.delete())
        db.session.commit()

@pytest.fixture()
def make_user(app):
    def _make(principal_id="user-1", **fields):
        with app.app_context():
            db.session.add(UserProfile(id=principal_id, **fields))
            db.session.commit()
        return principal_id
    return _make

@pytest.fixture()
def auth_headers(app):
    def _headers(principal_id="user-1"):
        with app.app_context():
            token = issue_token(principal_id)
        return {"Authorization": f"Bearer {token}"}
    return _headers

@pytest.fixture()
def signed_post(client):
    """POST a PayMongo-style event with a valid ``te`` signature."""
    def _post(event, secret=WEBHOOK_SECRET, timestamp="1700000000", variant="te"):
        body = json.dumps(event).encode("utf-8")
        sig = compute_signature(secret, timestamp, body)
        headers = {SIGNATURE_HEADER: f"t={timestamp},{variant}={sig}", "Content-Type": "application/json"}
        return client.post("/webhooks/paymongo", data=body, headers=headers)
    return _post

@pytest.fixture()
def paid_event():
    def _event(amount, event_type="payment.paid", livemode=False):
        return {
            "data": {
                "id": "evt_test",
                "type": "event",
                "attributes": {
                    "type": event_type,
                    "livemode": livemode,
                    "data": {"id": "pay_test", "type": "payment", "attributes": {"amount": amount, "currency": "PHP"}},
                },
            }
        }
    return _event
