from datetime import datetime, timezone
from typing import Any, Optional

CURRENCY_SYMBOL = "₱"

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything we store is UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

def format_display_amount(amount_minor: int) -> str:
    major, minor = divmod(int(amount_minor), 100)
    return f"{CURRENCY_SYMBOL}{major}.{minor:02d}"

def isoformat(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None

def safe_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return int(default)
