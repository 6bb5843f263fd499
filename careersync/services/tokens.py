from typing import Optional
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired
from flask import current_app

def _serializer() -> URLSafeTimedSerializer:
    secret = current_app.config["SECRET_KEY"]
    salt = current_app.config.get("AUTH_TOKEN_SALT", "bearer-token-v1")
    return URLSafeTimedSerializer(secret_key=secret, salt=salt)

def issue_token(principal_id: str) -> str:
    """Sign a bearer token for a principal (used by ops tooling and tests)."""
    return _serializer().dumps({"sub": str(principal_id)})

def verify_token(token: str) -> Optional[str]:
    """
    Opaque "verify token -> principal" call.
    Returns the principal id, or None for anything invalid or expired.
    """
    max_age = int(current_app.config.get("AUTH_TOKEN_MAX_AGE", 86400))
    try:
        data = _serializer().loads(token, max_age=max_age)
    except (BadSignature, SignatureExpired):
        return None
    if not isinstance(data, dict):
        return None
    sub = data.get("sub")
    return str(sub) if sub else None
