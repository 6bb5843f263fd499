"""Manual static-QR payments: the payer submits the wallet reference number."""
import re
from typing import Optional

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from careersync.billing.tiers import MANUAL_REFERENCE_TIERS
from careersync.errors import (
    BillingError,
    DuplicateSubmission,
    PersistenceFailure,
    SessionNotFound,
    ValidationFailure,
)
from careersync.extensions import db
from careersync.models import (
    PaymentVerification,
    VERIFICATION_PENDING,
    VERIFICATION_REJECTED,
    VERIFICATION_VERIFIED,
)
from careersync.services.fulfillment import fulfill_verification
from careersync.utils.helpers import utcnow

MIN_REFERENCE_LENGTH = 4
MAX_REFERENCE_LENGTH = 64
_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


def clean_reference(raw: Optional[str]) -> str:
    """Strip everything but ASCII letters and digits; reject short results."""
    if not raw or len(raw.strip()) < MIN_REFERENCE_LENGTH:
        raise ValidationFailure("Please enter a valid reference number (at least 4 characters).")
    cleaned = _NON_ALNUM.sub("", raw.strip())
    if len(cleaned) < MIN_REFERENCE_LENGTH:
        raise ValidationFailure("Reference number must contain at least 4 alphanumeric characters.")
    if len(cleaned) > MAX_REFERENCE_LENGTH:
        raise ValidationFailure("Reference number is too long.")
    return cleaned


def _live_reference(reference: str) -> Optional[PaymentVerification]:
    return db.session.execute(
        select(PaymentVerification)
        .where(
            PaymentVerification.reference_number == reference,
            PaymentVerification.status.in_((VERIFICATION_PENDING, VERIFICATION_VERIFIED)),
        )
        .limit(1)
    ).scalar_one_or_none()


def _duplicate(existing: PaymentVerification) -> DuplicateSubmission:
    if existing.status == VERIFICATION_VERIFIED:
        return DuplicateSubmission("This reference number has already been verified and credits granted.")
    return DuplicateSubmission("This reference number is already pending verification.")


def submit_reference(user, raw_reference: Optional[str], tier_name: Optional[str]) -> PaymentVerification:
    tier = (tier_name or "base").strip().lower()
    cfg = MANUAL_REFERENCE_TIERS.get(tier)
    if cfg is None:
        raise ValidationFailure("Static QR checkout is only available for Base Token tier.")

    reference = clean_reference(raw_reference)
    existing = _live_reference(reference)
    if existing is not None:
        raise _duplicate(existing)

    verification = PaymentVerification(
        user_id=user.id,
        reference_number=reference,
        tier=tier,
        amount_centavos=cfg["amount_centavos"],
        credits_to_grant=cfg["credits"],
        status=VERIFICATION_PENDING,
    )
    db.session.add(verification)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost a race with an identical submission
        db.session.rollback()
        raise DuplicateSubmission("This reference number is already pending verification.")
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceFailure("Failed to submit verification request.") from exc

    current_app.logger.info(
        "payment_verification_submitted",
        extra={"verification_id": verification.id, "user_id": user.id},
    )
    return verification


def _transition(reference: str, to_status: str, now) -> Optional[int]:
    stmt = (
        update(PaymentVerification)
        .where(
            PaymentVerification.reference_number == reference,
            PaymentVerification.status == VERIFICATION_PENDING,
        )
        .values(status=to_status, verified_at=now if to_status == VERIFICATION_VERIFIED else None)
        .returning(PaymentVerification.id)
        .execution_options(synchronize_session=False)
    )
    return db.session.execute(stmt).scalars().first()


def approve_reference(raw_reference: str, now=None) -> PaymentVerification:
    """Operator approval: pending -> verified plus credit, in one transaction."""
    now = now or utcnow()
    reference = clean_reference(raw_reference)
    try:
        verification_id = _transition(reference, VERIFICATION_VERIFIED, now)
        if verification_id is None:
            db.session.rollback()
            raise SessionNotFound(f"No pending verification for reference {reference}")
        verification = db.session.get(PaymentVerification, verification_id, populate_existing=True)
        fulfill_verification(verification, now=now)
        db.session.commit()
    except BillingError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceFailure("Approval transaction failed") from exc
    return verification


def reject_reference(raw_reference: str) -> None:
    reference = clean_reference(raw_reference)
    verification_id = _transition(reference, VERIFICATION_REJECTED, None)
    if verification_id is None:
        db.session.rollback()
        raise SessionNotFound(f"No pending verification for reference {reference}")
    db.session.commit()
