"""
Fulfillment writer: applies credit/tier mutations after a successful claim.

Runs inside the caller's transaction and never commits. The balance change is
a single arithmetic UPDATE (balance = balance + n), so concurrent
fulfillments for the same user cannot lose increments.
"""
from datetime import datetime, timedelta
from typing import Mapping, Optional

from sqlalchemy import update

from careersync.billing.tiers import TIERS
from careersync.errors import PersistenceFailure
from careersync.extensions import db
from careersync.models import (
    CreditLedgerEntry,
    UserProfile,
    ENTRY_PURCHASE,
    ENTRY_MANUAL_PURCHASE,
)
from careersync.utils.helpers import format_display_amount, utcnow


def _apply_account_update(*, user_id: str, tier: str, credits: int, now: datetime) -> None:
    values = {"current_credit_balance": UserProfile.current_credit_balance + int(credits)}

    cfg = TIERS.get(tier)
    if cfg is not None and cfg.is_subscription:
        values.update(
            tier=cfg.name,
            tier_expires_at=now + timedelta(days=cfg.lock_days),
            daily_credits_used=0,
            daily_credits_reset_at=now,
        )

    result = db.session.execute(
        update(UserProfile)
        .where(UserProfile.id == user_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise PersistenceFailure(f"account {user_id!r} not found for fulfillment")


def fulfill_session(claimed: Mapping, now: Optional[datetime] = None) -> CreditLedgerEntry:
    """
    Credit the account behind a freshly claimed payment session.

    ``claimed`` is the row returned by the claim (user_id, tier,
    credits_to_grant, exact_amount_due, id).
    """
    now = now or utcnow()
    _apply_account_update(
        user_id=claimed["user_id"],
        tier=claimed["tier"],
        credits=claimed["credits_to_grant"],
        now=now,
    )
    entry = CreditLedgerEntry(
        user_id=claimed["user_id"],
        entry_type=ENTRY_PURCHASE,
        amount_display=format_display_amount(claimed["exact_amount_due"]),
        credits_delta=int(claimed["credits_to_grant"]),
        session_id=claimed["id"],
        created_at=now,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def fulfill_verification(verification, now: Optional[datetime] = None) -> CreditLedgerEntry:
    """Same as fulfill_session, for an approved manual reference submission."""
    now = now or utcnow()
    _apply_account_update(
        user_id=verification.user_id,
        tier=verification.tier,
        credits=verification.credits_to_grant,
        now=now,
    )
    entry = CreditLedgerEntry(
        user_id=verification.user_id,
        entry_type=ENTRY_MANUAL_PURCHASE,
        amount_display=format_display_amount(verification.amount_centavos),
        credits_delta=int(verification.credits_to_grant),
        verification_id=verification.id,
        created_at=now,
    )
    db.session.add(entry)
    db.session.flush()
    return entry
