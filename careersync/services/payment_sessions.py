"""
Payment session lifecycle: centavo-matched assignment, expiry, and the
exactly-once claim.

The database is the only coordinator:
  - a partial unique index on exact_amount_due WHERE status = 'pending'
    makes the assignment commit a compare-and-swap on the amount;
  - the claim is one conditional UPDATE ... RETURNING, so of any number of
    concurrent or repeated deliveries for the same amount exactly one sees
    the row.
"""
import random
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from careersync.billing.tiers import OFFSET_SLOTS, SESSION_TTL_SECONDS, TierConfig, resolve_tier, tier_rank
from careersync.errors import BillingError, PersistenceFailure, PoolExhausted, TierLocked, ValidationFailure
from careersync.extensions import db
from careersync.models import PaymentSession, STATUS_EXPIRED, STATUS_PAID, STATUS_PENDING
from careersync.services import notifier
from careersync.services.fulfillment import fulfill_session
from careersync.utils.helpers import as_utc, format_display_amount, isoformat, utcnow

MAX_ASSIGN_ATTEMPTS = 5

_rng = random.SystemRandom()


def _cutoff(now: datetime) -> datetime:
    return now - timedelta(seconds=SESSION_TTL_SECONDS)


def remaining_seconds(session: PaymentSession, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    elapsed = (now - as_utc(session.created_at)).total_seconds()
    return max(0, int(SESSION_TTL_SECONDS - elapsed))


def check_tier_lock(user, cfg: TierConfig, now: datetime) -> None:
    """Block buying the same or a lower tier while a subscription lock is active."""
    expires = as_utc(getattr(user, "tier_expires_at", None))
    if not expires or expires <= now:
        return
    active = getattr(user, "tier", None)
    if cfg.rank <= tier_rank(active):
        raise TierLocked(f"Your {active} plan is active until {expires.date().isoformat()}.")


def expire_stale_sessions(now: Optional[datetime] = None) -> List[str]:
    """Flip pending sessions older than the TTL to expired. Commits."""
    now = now or utcnow()
    stmt = (
        update(PaymentSession)
        .where(PaymentSession.status == STATUS_PENDING, PaymentSession.created_at < _cutoff(now))
        .values(status=STATUS_EXPIRED)
        .returning(PaymentSession.id)
        .execution_options(synchronize_session=False)
    )
    expired_ids = list(db.session.execute(stmt).scalars())
    db.session.commit()

    for sid in expired_ids:
        notifier.publish_status(sid, STATUS_EXPIRED)
    if expired_ids:
        current_app.logger.info("payment_sessions_expired", extra={"count": len(expired_ids)})
    return expired_ids


def _sweep_best_effort(now: datetime) -> None:
    try:
        expire_stale_sessions(now=now)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("payment_sessions_expire_failed")


def _taken_amounts(lo: int, hi: int) -> set:
    # Every pending session counts, whatever its tier
    rows = db.session.execute(
        select(PaymentSession.exact_amount_due).where(
            PaymentSession.status == STATUS_PENDING,
            PaymentSession.exact_amount_due >= lo,
            PaymentSession.exact_amount_due <= hi,
        )
    ).scalars()
    return set(rows)


def assign_session(user, tier_name: Optional[str], *, now: Optional[datetime] = None) -> PaymentSession:
    """
    Create a pending session with a system-wide unique amount.

    Raises ValidationFailure (unknown tier), TierLocked, or PoolExhausted
    (retryable: every offset is held by a pending session right now).
    """
    cfg = resolve_tier(tier_name)
    if cfg is None:
        raise ValidationFailure(f"Invalid tier: {tier_name}")

    now = now or utcnow()
    check_tier_lock(user, cfg, now)
    _sweep_best_effort(now)

    lo, hi = cfg.base_amount, cfg.base_amount + OFFSET_SLOTS - 1
    for attempt in range(1, MAX_ASSIGN_ATTEMPTS + 1):
        taken = _taken_amounts(lo, hi)
        free = [amount for amount in range(lo, hi + 1) if amount not in taken]
        if not free:
            raise PoolExhausted(f"All {OFFSET_SLOTS} {cfg.name} amounts are in use; try again shortly.")

        session = PaymentSession(
            user_id=user.id,
            tier=cfg.name,
            exact_amount_due=_rng.choice(free),
            credits_to_grant=cfg.credits_on_purchase,
            status=STATUS_PENDING,
            created_at=now,
        )
        db.session.add(session)
        try:
            db.session.commit()
        except IntegrityError:
            # A concurrent assignment committed the same amount first
            db.session.rollback()
            current_app.logger.info(
                "payment_session_amount_collision",
                extra={"tier": cfg.name, "attempt": attempt},
            )
            continue
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceFailure("Could not create payment session") from exc

        current_app.logger.info(
            "payment_session_assigned",
            extra={"session_id": session.id, "tier": cfg.name, "amount": session.exact_amount_due},
        )
        return session

    raise PoolExhausted("Could not reserve a unique amount; try again shortly.")


def claim_session(amount: int, *, now: Optional[datetime] = None) -> Optional[Dict]:
    """
    Atomically flip the one pending, unexpired session for ``amount`` to paid.
    Returns the claimed row as a dict, or None. Does not commit.
    """
    now = now or utcnow()
    stmt = (
        update(PaymentSession)
        .where(
            PaymentSession.status == STATUS_PENDING,
            PaymentSession.exact_amount_due == int(amount),
            PaymentSession.created_at >= _cutoff(now),
        )
        .values(status=STATUS_PAID, paid_at=now)
        .returning(
            PaymentSession.id,
            PaymentSession.user_id,
            PaymentSession.tier,
            PaymentSession.credits_to_grant,
            PaymentSession.exact_amount_due,
        )
        .execution_options(synchronize_session=False)
    )
    row = db.session.execute(stmt).mappings().first()
    return dict(row) if row else None


def claim_and_fulfill(amount: int, *, now: Optional[datetime] = None) -> Optional[Dict]:
    """
    Claim + fulfillment as one transaction. Either the session is paid and
    the account credited together, or nothing changes.
    """
    now = now or utcnow()
    try:
        claimed = claim_session(amount, now=now)
        if claimed is None:
            db.session.rollback()
            return None
        fulfill_session(claimed, now=now)
        db.session.commit()
    except BillingError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceFailure("Claim transaction failed") from exc

    notifier.publish_status(claimed["id"], STATUS_PAID, credits_to_grant=claimed["credits_to_grant"])
    return claimed


def get_session_for_user(user, session_id: str) -> Optional[PaymentSession]:
    return db.session.execute(
        select(PaymentSession).where(PaymentSession.id == session_id, PaymentSession.user_id == user.id)
    ).scalar_one_or_none()


def latest_pending_for_user(user, *, now: Optional[datetime] = None) -> Optional[PaymentSession]:
    now = now or utcnow()
    return db.session.execute(
        select(PaymentSession)
        .where(
            PaymentSession.user_id == user.id,
            PaymentSession.status == STATUS_PENDING,
            PaymentSession.created_at >= _cutoff(now),
        )
        .order_by(PaymentSession.created_at.desc())
        .limit(1)
    ).scalar_one_or_none()


def to_payload(session: PaymentSession, now: Optional[datetime] = None) -> Dict:
    remaining = remaining_seconds(session, now) if session.status == STATUS_PENDING else 0
    return {
        "session_id": session.id,
        "status": session.status,
        "tier": session.tier,
        "exact_amount_due": session.exact_amount_due,
        "display_amount": format_display_amount(session.exact_amount_due),
        "credits": session.credits_to_grant,
        "ttl_seconds": SESSION_TTL_SECONDS,
        "remaining_seconds": remaining,
        "created_at": isoformat(session.created_at),
        "paid_at": isoformat(session.paid_at),
    }
