import json

import redis
from flask import Response, current_app, jsonify, request, stream_with_context
from flask_login import current_user, login_required

from . import bp
from careersync.billing import emvco
from careersync.billing.tiers import TIERS
from careersync.errors import SessionNotFound
from careersync.extensions import db, limiter
from careersync.models import TERMINAL_STATUSES
from careersync.services import gateway, notifier
from careersync.services import payment_sessions as sessions_service
from careersync.services.verifications import submit_reference
from careersync.utils.helpers import format_display_amount


def _redirect_url_or_none(session) -> str | None:
    """Mobile wallet deep link. Any gateway failure leaves the session intact."""
    if not current_app.config.get("PAYMONGO_SECRET_KEY"):
        return None
    cfg = TIERS[session.tier]
    display = format_display_amount(session.exact_amount_due)
    try:
        return gateway.create_wallet_redirect(
            amount_minor=session.exact_amount_due,
            description=f"CareerSync {cfg.label} - {display}",
        )
    except Exception:
        current_app.logger.exception(
            "billing.sessions.redirect_create_failed",
            extra={"session_id": session.id, "user_id": current_user.id},
        )
        return None


def _qr_payload_or_none(session) -> str | None:
    try:
        return emvco.session_payload(current_app.config.get("STATIC_QRPH_DATA"), session.exact_amount_due)
    except ValueError:
        current_app.logger.exception("billing.sessions.qr_payload_failed", extra={"session_id": session.id})
        return None


@bp.post("/sessions")
@limiter.limit("10/minute")
@login_required
def create_session():
    data = request.get_json(silent=True) or {}
    session = sessions_service.assign_session(current_user, data.get("tier"))

    payload = sessions_service.to_payload(session)
    payload["redirect_url"] = _redirect_url_or_none(session) if data.get("mobile") else None
    payload["qr_payload"] = _qr_payload_or_none(session)
    return jsonify(payload), 200


@bp.get("/sessions/latest-pending")
@login_required
def latest_pending_session():
    """Reload recovery: the caller's newest unexpired pending session."""
    session = sessions_service.latest_pending_for_user(current_user)
    if session is None:
        raise SessionNotFound("No pending payment session.")
    return jsonify(sessions_service.to_payload(session)), 200


@bp.get("/sessions/<session_id>")
@login_required
def get_session(session_id: str):
    # Lazily expire so pollers observe the terminal state
    sessions_service.expire_stale_sessions()
    session = sessions_service.get_session_for_user(current_user, session_id)
    if session is None:
        raise SessionNotFound("Payment session not found.")
    return jsonify(sessions_service.to_payload(session)), 200


@bp.get("/sessions/<session_id>/events")
@login_required
def session_events(session_id: str):
    """Server-sent events: one `data:` line per status change."""
    session = sessions_service.get_session_for_user(current_user, session_id)
    if session is None:
        raise SessionNotFound("Payment session not found.")
    if not notifier.push_enabled():
        return jsonify({"error": "push_unavailable"}), 503

    try:
        subscription = notifier.subscribe(session_id)
    except redis.RedisError:
        current_app.logger.warning("payment_push_subscribe_failed", extra={"session_id": session_id})
        subscription = None
    if subscription is None:
        return jsonify({"error": "push_unavailable"}), 503

    # Read the status only once subscribed so a change in between is not lost
    db.session.refresh(session)
    initial = {"session_id": session.id, "status": session.status}

    def _stream():
        yield f"data: {json.dumps(initial)}\n\n"
        if initial["status"] in TERMINAL_STATUSES:
            return
        for message in subscription:
            if message is None:
                yield ": keepalive\n\n"
                continue
            yield f"data: {json.dumps(message)}\n\n"
            if message.get("status") in TERMINAL_STATUSES:
                return

    response = Response(
        stream_with_context(_stream()),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
    response.call_on_close(subscription.close)
    return response


@bp.post("/verifications")
@limiter.limit("10/minute")
@login_required
def submit_verification():
    data = request.get_json(silent=True) or {}
    verification = submit_reference(current_user, data.get("reference_number"), data.get("tier"))
    return jsonify({
        "success": True,
        "verification_id": verification.id,
        "message": "Reference number submitted! Credits will be granted once your payment is confirmed.",
    }), 200
