"""
Billing error taxonomy.

Every error carries the HTTP status it maps to and a stable machine-readable
code; the app factory renders them as ``{"error": code, "message": ...}``.
Idempotent no-ops (already claimed, redelivered, below threshold) are not
errors and never raise.
"""
from typing import Optional


class BillingError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class AuthenticationFailure(BillingError):
    status_code = 401
    code = "unauthorized"


class ValidationFailure(BillingError):
    status_code = 400
    code = "invalid_request"


class TierLocked(BillingError):
    status_code = 402
    code = "tier_locked"


class SessionNotFound(BillingError):
    status_code = 404
    code = "not_found"


class DuplicateSubmission(BillingError):
    status_code = 409
    code = "duplicate_submission"


class PoolExhausted(BillingError):
    """No free centavo offset right now. Retryable."""

    status_code = 503
    code = "amount_pool_exhausted"
    retry_after = 30


class ConfigurationFailure(BillingError):
    status_code = 500
    code = "configuration_error"


class PersistenceFailure(BillingError):
    status_code = 500
    code = "persistence_error"
