from sqlalchemy import text
from careersync.extensions import db
from careersync.utils.helpers import utcnow

VERIFICATION_PENDING = "pending"
VERIFICATION_VERIFIED = "verified"
VERIFICATION_REJECTED = "rejected"

class PaymentVerification(db.Model):
    """Manual static-QR payments identified by the payer's reference number."""
    __tablename__ = "payment_verifications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), db.ForeignKey("user_profiles.id", ondelete="RESTRICT"), nullable=False, index=True)
    reference_number = db.Column(db.String(64), nullable=False, index=True)
    tier = db.Column(db.String(16), nullable=False)
    amount_centavos = db.Column(db.Integer, nullable=False)
    credits_to_grant = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=VERIFICATION_PENDING, server_default=text("'pending'"))

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # A reference may be live (pending/verified) at most once; rejected ones can be resubmitted
        db.Index(
            "uq_payment_verifications_live_reference",
            "reference_number",
            unique=True,
            postgresql_where=text("status IN ('pending', 'verified')"),
            sqlite_where=text("status IN ('pending', 'verified')"),
        ),
    )

    def __repr__(self) -> str:
        return f"<PaymentVerification id={self.id} ref={self.reference_number!r} status={self.status!r}>"
