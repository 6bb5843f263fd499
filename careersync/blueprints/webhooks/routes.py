import json
from typing import Any, Optional

from flask import current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from . import bp
from careersync.errors import PersistenceFailure
from careersync.extensions import db, limiter
from careersync.models import WebhookAuditEntry
from careersync.services.payment_sessions import claim_and_fulfill, expire_stale_sessions
from careersync.services.webhook_signature import SIGNATURE_HEADER, verify_signature
from careersync.utils.helpers import safe_int, utcnow

FULFILLMENT_EVENTS = frozenset({"payment.paid", "link.payment.paid"})


def _as_dict(value) -> dict:
    return value if isinstance(value, dict) else {}


def _extract_amount(attrs: dict) -> int:
    """Amount in centavos; PayMongo nests it differently per event class."""
    nested = _as_dict(attrs.get("data"))
    candidates: list[Optional[Any]] = [
        attrs.get("amount"),
        _as_dict(nested.get("attributes")).get("amount"),
        nested.get("amount"),
    ]
    for value in candidates:
        if value:
            return safe_int(value)
    return 0


@bp.post("/paymongo")
@limiter.exempt
def paymongo_webhook():
    """
    PayMongo -> /webhooks/paymongo
    Verifies the signature before touching the database, audits the event
    type, then claims and fulfils the pending session matching the amount.
    Every authenticated outcome (including no-ops) is a 200.
    """
    # 1) Configuration gate
    secret = current_app.config.get("PAYMONGO_WEBHOOK_SECRET")
    if not secret:
        current_app.logger.error("paymongo_webhook_secret_missing")
        return jsonify({"error": "configuration_error"}), 500

    # 2) Authentication gate: nothing is written on failure, not even audit rows
    raw = request.get_data(cache=True, as_text=False) or b""
    if not verify_signature(secret, request.headers.get(SIGNATURE_HEADER), raw):
        current_app.logger.warning(json.dumps({
            "event": "paymongo_webhook_rejected",
            "has_header": bool(request.headers.get(SIGNATURE_HEADER)),
            "remote_addr": request.remote_addr,
        }))
        return jsonify({"error": "invalid_signature"}), 401

    try:
        envelope = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return jsonify({"error": "malformed_event"}), 400

    attrs = _as_dict(_as_dict(_as_dict(envelope).get("data")).get("attributes"))
    event_type = attrs.get("type")
    if not isinstance(event_type, str) or not event_type:
        event_type = "unknown"

    # 3) Audit (metadata only)
    try:
        db.session.add(WebhookAuditEntry(
            provider="paymongo",
            event_type=str(event_type)[:80],
            livemode=attrs.get("livemode") if isinstance(attrs.get("livemode"), bool) else None,
            verification="verified",
            received_at=utcnow(),
        ))
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceFailure("Could not record webhook audit entry") from exc

    # 4) Branch on event class
    if event_type not in FULFILLMENT_EVENTS:
        return jsonify({"received": True, "matched": False, "processed": False, "event_type": event_type}), 200

    amount = _extract_amount(attrs)
    if amount < int(current_app.config.get("WEBHOOK_MIN_AMOUNT", 100)):
        return jsonify({"received": True, "matched": False, "reason": "below_threshold", "amount": amount}), 200

    now = utcnow()
    try:
        expire_stale_sessions(now=now)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("paymongo_webhook_expire_failed")

    claimed = claim_and_fulfill(amount, now=now)
    if claimed is None:
        current_app.logger.info(json.dumps({"event": "paymongo_webhook_unmatched", "amount": amount}))
        return jsonify({
            "received": True,
            "matched": False,
            "reason": "no_match_or_already_processed",
            "amount": amount,
        }), 200

    current_app.logger.info(json.dumps({
        "event": "paymongo_webhook_matched",
        "session_id": claimed["id"],
        "tier": claimed["tier"],
        "amount": amount,
    }))
    return jsonify({
        "received": True,
        "matched": True,
        "session_id": claimed["id"],
        "user_id": claimed["user_id"],
        "tier": claimed["tier"],
        "credits_granted": claimed["credits_to_grant"],
        "amount": amount,
    }), 200
