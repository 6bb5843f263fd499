from careersync.extensions import db
from careersync.utils.helpers import utcnow

ENTRY_PURCHASE = "purchase"
ENTRY_MANUAL_PURCHASE = "manual_purchase"

class CreditLedgerEntry(db.Model):
    """Append-only balance history. Written only by the fulfillment writer."""
    __tablename__ = "credit_ledger_entries"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), db.ForeignKey("user_profiles.id", ondelete="RESTRICT"), nullable=False, index=True)
    entry_type = db.Column(db.String(32), nullable=False)
    amount_display = db.Column(db.String(32), nullable=False)
    credits_delta = db.Column(db.Integer, nullable=False)

    # At most one entry per fulfilled session / verification
    session_id = db.Column(db.String(32), db.ForeignKey("payment_sessions.id"), nullable=True, unique=True)
    verification_id = db.Column(db.Integer, db.ForeignKey("payment_verifications.id"), nullable=True, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<CreditLedgerEntry id={self.id} user_id={self.user_id!r} delta={self.credits_delta}>"
