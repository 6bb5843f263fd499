from careersync.extensions import db
from careersync.utils.helpers import utcnow

class WebhookAuditEntry(db.Model):
    """Verified webhook metadata only; the raw body is never stored."""
    __tablename__ = "webhook_audit_entries"

    id = db.Column(db.Integer, primary_key=True)
    provider = db.Column(db.String(32), nullable=False, default="paymongo")
    event_type = db.Column(db.String(80), nullable=False, index=True)
    livemode = db.Column(db.Boolean, nullable=True)
    verification = db.Column(db.String(16), nullable=False, default="verified")
    received_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
