import uuid
from sqlalchemy import text
from careersync.extensions import db
from careersync.utils.helpers import utcnow

STATUS_PENDING = "pending"
STATUS_PAID = "paid"
STATUS_EXPIRED = "expired"
STATUS_CANCELLED = "cancelled"

TERMINAL_STATUSES = frozenset({STATUS_PAID, STATUS_EXPIRED, STATUS_CANCELLED})

def _new_id() -> str:
    return uuid.uuid4().hex

class PaymentSession(db.Model):
    __tablename__ = "payment_sessions"

    id = db.Column(db.String(32), primary_key=True, default=_new_id)
    user_id = db.Column(db.String(64), db.ForeignKey("user_profiles.id", ondelete="RESTRICT"), nullable=False, index=True)

    tier = db.Column(db.String(16), nullable=False)
    exact_amount_due = db.Column(db.Integer, nullable=False)  # centavos
    credits_to_grant = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, index=True, default=STATUS_PENDING, server_default=text("'pending'"))

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # Centavo-matching invariant: one pending session per amount, across all tiers
        db.Index(
            "uq_payment_sessions_pending_amount",
            "exact_amount_due",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<PaymentSession id={self.id} user_id={self.user_id!r} amount={self.exact_amount_due} status={self.status!r}>"
