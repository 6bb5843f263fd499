from flask_login import UserMixin
from sqlalchemy import text
from careersync.extensions import db, login_manager
from careersync.utils.helpers import utcnow

class UserProfile(db.Model, UserMixin):
    __tablename__ = "user_profiles"

    # Principal id issued by the identity provider (opaque string)
    id = db.Column(db.String(64), primary_key=True)
    email = db.Column(db.String(255), nullable=True)

    current_credit_balance = db.Column(db.Integer, nullable=False, default=0, server_default=text("0"))

    tier = db.Column(db.String(16), nullable=False, default="base", server_default=text("'base'"))
    tier_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    daily_credits_used = db.Column(db.Integer, nullable=False, default=0, server_default=text("0"))
    daily_credits_reset_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def get_id(self) -> str:
        return str(self.id)

    def __repr__(self) -> str:
        return f"<UserProfile id={self.id!r} tier={self.tier!r} credits={self.current_credit_balance}>"

@login_manager.user_loader
def load_user(user_id: str):
    try:
        return db.session.get(UserProfile, str(user_id))
    except Exception:
        return None
