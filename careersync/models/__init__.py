from .user_profile import UserProfile
from .payment_session import (
    PaymentSession,
    STATUS_PENDING,
    STATUS_PAID,
    STATUS_EXPIRED,
    STATUS_CANCELLED,
    TERMINAL_STATUSES,
)
from .payment_verification import (
    PaymentVerification,
    VERIFICATION_PENDING,
    VERIFICATION_VERIFIED,
    VERIFICATION_REJECTED,
)
from .credit_ledger import CreditLedgerEntry, ENTRY_PURCHASE, ENTRY_MANUAL_PURCHASE
from .webhook_audit import WebhookAuditEntry
