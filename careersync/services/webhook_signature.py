"""
PayMongo webhook signatures.

Header format: ``t=<unix ts>,te=<hex>,li=<hex>``. The signed string is
``"{t}.{raw body}"`` and each variant is an HMAC-SHA256 hex digest of it
(``li`` for live-mode events, ``te`` for test-mode ones).
"""
import hashlib
import hmac
from typing import Dict, Optional, Tuple

SIGNATURE_HEADER = "Paymongo-Signature"
SIGNATURE_VARIANTS = ("li", "te")


def parse_signature_header(header: Optional[str]) -> Optional[Tuple[str, Dict[str, str]]]:
    """Return (timestamp, {variant: signature}) or None if the header is unusable."""
    if not header:
        return None
    parts: Dict[str, str] = {}
    for chunk in header.split(","):
        key, sep, value = chunk.strip().partition("=")
        if sep and key and value:
            parts[key] = value
    timestamp = parts.pop("t", None)
    signatures = {k: v for k, v in parts.items() if k in SIGNATURE_VARIANTS}
    if not timestamp or not signatures:
        return None
    return timestamp, signatures


def compute_signature(secret: str, timestamp: str, raw_body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), timestamp.encode("utf-8") + b"." + raw_body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, header: Optional[str], raw_body: bytes) -> bool:
    parsed = parse_signature_header(header)
    if parsed is None:
        return False
    timestamp, signatures = parsed
    expected = compute_signature(secret, timestamp, raw_body)
    supplied = signatures.get("li") or signatures.get("te")
    try:
        return hmac.compare_digest(expected, supplied)
    except TypeError:
        return False
