import json
from datetime import timedelta

from careersync.extensions import db
from careersync.models import CreditLedgerEntry, PaymentSession, UserProfile, WebhookAuditEntry
from careersync.services import payment_sessions as svc
from careersync.services.webhook_signature import SIGNATURE_HEADER
from careersync.utils.helpers import as_utc, utcnow

def _pending(app, tier="base", uid="user-1", created_at=None):
    with app.app_context():
        user = db.session.get(UserProfile, uid)
        if user is None:
            user = UserProfile(id=uid)
            db.session.add(user)
            db.session.commit()
        s = svc.assign_session(user, tier, now=created_at)
        return s.id, s.exact_amount_due

def test_matched_payment_marks_paid_and_credits_once(app, signed_post, paid_event):
    sid, amount = _pending(app)

    resp = signed_post(paid_event(amount))
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["matched"] is True
    assert body["session_id"] == sid
    assert body["user_id"] == "user-1"
    assert body["credits_granted"] == 10
    assert body["amount"] == amount

    with app.app_context():
        assert db.session.get(PaymentSession, sid).status == "paid"
        assert db.session.get(UserProfile, "user-1").current_credit_balance == 10
        assert CreditLedgerEntry.query.filter_by(session_id=sid).count() == 1
        audit = WebhookAuditEntry.query.one()
        assert audit.event_type == "payment.paid"
        assert audit.verification == "verified"
        assert audit.livemode is False

def test_redelivery_is_a_noop(app, signed_post, paid_event):
    sid, amount = _pending(app)

    assert signed_post(paid_event(amount)).get_json()["matched"] is True
    again = signed_post(paid_event(amount))
    assert again.status_code == 200
    assert again.get_json() == {
        "received": True,
        "matched": False,
        "reason": "no_match_or_already_processed",
        "amount": amount,
    }

    with app.app_context():
        assert db.session.get(UserProfile, "user-1").current_credit_balance == 10
        assert CreditLedgerEntry.query.count() == 1
        assert WebhookAuditEntry.query.count() == 2

def test_tampered_body_is_rejected_without_writes(app, client, paid_event):
    sid, amount = _pending(app)
    body = json.dumps(paid_event(amount)).encode("utf-8")

    from careersync.services.webhook_signature import compute_signature
    sig = compute_signature("whsk_test_secret", "1700000000", body)
    tampered = body.replace(str(amount).encode(), str(amount + 1).encode())

    resp = client.post("/webhooks/paymongo", data=tampered, headers={SIGNATURE_HEADER: f"t=1700000000,te={sig}"})
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "invalid_signature"

    with app.app_context():
        assert WebhookAuditEntry.query.count() == 0
        assert db.session.get(PaymentSession, sid).status == "pending"
        assert db.session.get(UserProfile, "user-1").current_credit_balance == 0

def test_missing_signature_header_is_rejected(app, client, paid_event):
    _, amount = _pending(app)
    resp = client.post("/webhooks/paymongo", json=paid_event(amount))
    assert resp.status_code == 401
    with app.app_context():
        assert WebhookAuditEntry.query.count() == 0

def test_wrong_secret_is_rejected(app, signed_post, paid_event):
    _, amount = _pending(app)
    resp = signed_post(paid_event(amount), secret="whsk_someone_else")
    assert resp.status_code == 401

def test_live_signature_variant_is_accepted(app, signed_post, paid_event):
    _, amount = _pending(app)
    resp = signed_post(paid_event(amount, livemode=True), variant="li")
    assert resp.get_json()["matched"] is True

def test_missing_webhook_secret_is_a_server_error(app, signed_post, paid_event, monkeypatch):
    monkeypatch.setitem(app.config, "PAYMONGO_WEBHOOK_SECRET", None)
    resp = signed_post(paid_event(150))
    assert resp.status_code == 500
    assert resp.get_json()["error"] == "configuration_error"

def test_malformed_json_is_a_bad_request(client):
    from careersync.services.webhook_signature import compute_signature
    body = b"not json"
    sig = compute_signature("whsk_test_secret", "1", body)
    resp = client.post("/webhooks/paymongo", data=body, headers={SIGNATURE_HEADER: f"t=1,te={sig}"})
    assert resp.status_code == 400

def test_informational_event_is_acknowledged_not_processed(app, signed_post, paid_event):
    sid, amount = _pending(app)
    resp = signed_post(paid_event(amount, event_type="payment.failed"))
    assert resp.status_code == 200
    assert resp.get_json() == {"received": True, "matched": False, "processed": False, "event_type": "payment.failed"}
    with app.app_context():
        assert db.session.get(PaymentSession, sid).status == "pending"
        assert WebhookAuditEntry.query.one().event_type == "payment.failed"

def test_amount_below_threshold_is_ignored(app, signed_post, paid_event):
    resp = signed_post(paid_event(99))
    assert resp.status_code == 200
    assert resp.get_json()["reason"] == "below_threshold"

def test_link_payment_with_top_level_amount(app, signed_post):
    _, amount = _pending(app)
    event = {"data": {"attributes": {"type": "link.payment.paid", "amount": amount}}}
    assert signed_post(event).get_json()["matched"] is True

def test_expired_session_cannot_be_claimed(app, signed_post, paid_event):
    stale = utcnow() - timedelta(seconds=700)
    sid, amount = _pending(app, created_at=stale)

    resp = signed_post(paid_event(amount))
    assert resp.get_json()["matched"] is False

    with app.app_context():
        assert db.session.get(PaymentSession, sid).status == "expired"
        assert db.session.get(UserProfile, "user-1").current_credit_balance == 0

def test_subscription_payment_sets_tier_and_expiry(app, signed_post, paid_event):
    _, amount = _pending(app, tier="premium")
    before = utcnow()

    body = signed_post(paid_event(amount)).get_json()
    assert body["tier"] == "premium"
    assert body["credits_granted"] == 50

    with app.app_context():
        user = db.session.get(UserProfile, "user-1")
        assert user.tier == "premium"
        assert user.current_credit_balance == 50
        expires = as_utc(user.tier_expires_at)
        assert before + timedelta(days=30) <= expires <= utcnow() + timedelta(days=30)

def test_payment_goes_to_the_session_with_that_exact_amount(app, signed_post, paid_event):
    mine, my_amount = _pending(app, uid="alice")
    theirs, their_amount = _pending(app, uid="bob")
    assert my_amount != their_amount

    signed_post(paid_event(their_amount))

    with app.app_context():
        assert db.session.get(PaymentSession, mine).status == "pending"
        assert db.session.get(PaymentSession, theirs).status == "paid"
        assert db.session.get(UserProfile, "alice").current_credit_balance == 0
        assert db.session.get(UserProfile, "bob").current_credit_balance == 10

def test_oddly_shaped_envelopes_are_acknowledged(app, signed_post):
    for envelope in ({"data": "evt"}, {"data": {"attributes": ["payment.paid"]}}, ["not", "an", "object"]):
        resp = signed_post(envelope)
        assert resp.status_code == 200
        assert resp.get_json()["event_type"] == "unknown"

    resp = signed_post({"data": {"attributes": {"type": ["payment.paid"]}}})
    assert resp.get_json()["processed"] is False

def test_paid_event_with_non_object_payment_is_below_threshold(app, signed_post):
    event = {"data": {"attributes": {"type": "payment.paid", "data": {"attributes": "oops"}}}}
    resp = signed_post(event)
    assert resp.status_code == 200
    assert resp.get_json()["reason"] == "below_threshold"
    with app.app_context():
        assert WebhookAuditEntry.query.count() == 1
