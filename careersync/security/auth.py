from flask import jsonify
from sqlalchemy.exc import IntegrityError

from careersync.extensions import db, login_manager
from careersync.models import UserProfile
from careersync.services.tokens import verify_token

BEARER_PREFIX = "Bearer "


def _bearer_token(request):
    header = request.headers.get("Authorization") or ""
    if not header.startswith(BEARER_PREFIX):
        return None
    return header[len(BEARER_PREFIX):].strip() or None


@login_manager.request_loader
def load_user_from_request(request):
    token = _bearer_token(request)
    if not token:
        return None
    principal_id = verify_token(token)
    if not principal_id:
        return None

    user = db.session.get(UserProfile, principal_id)
    if user is not None:
        return user

    # First authenticated request for this principal: provision its profile row
    user = UserProfile(id=principal_id)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        user = db.session.get(UserProfile, principal_id)
    return user


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"error": "unauthorized", "message": "Missing or invalid bearer token."}), 401
