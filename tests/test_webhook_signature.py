import hashlib
import hmac

from careersync.services.webhook_signature import compute_signature, parse_signature_header, verify_signature

SECRET = "whsk_test_secret"
BODY = b'{"data":{"attributes":{"type":"payment.paid"}}}'

def test_parse_header_keeps_known_variants():
    assert parse_signature_header("t=1700000000, te=abc,li=def,v9=zzz") == ("1700000000", {"te": "abc", "li": "def"})

def test_parse_header_rejects_unusable_values():
    assert parse_signature_header(None) is None
    assert parse_signature_header("") is None
    assert parse_signature_header("te=abc") is None
    assert parse_signature_header("t=1") is None
    assert parse_signature_header("garbage") is None

def test_signature_covers_timestamp_and_raw_body():
    expected = hmac.new(SECRET.encode(), b"123." + BODY, hashlib.sha256).hexdigest()
    assert compute_signature(SECRET, "123", BODY) == expected

def test_verify_accepts_test_and_live_variants():
    sig = compute_signature(SECRET, "123", BODY)
    assert verify_signature(SECRET, f"t=123,te={sig}", BODY)
    assert verify_signature(SECRET, f"t=123,te=,li={sig}", BODY)

def test_verify_prefers_live_signature():
    sig = compute_signature(SECRET, "123", BODY)
    assert not verify_signature(SECRET, f"t=123,te={sig},li=deadbeef", BODY)

def test_verify_rejects_changed_timestamp_body_or_secret():
    sig = compute_signature(SECRET, "123", BODY)
    assert not verify_signature(SECRET, f"t=124,te={sig}", BODY)
    assert not verify_signature(SECRET, f"t=123,te={sig}", BODY + b" ")
    assert not verify_signature("other", f"t=123,te={sig}", BODY)
    assert not verify_signature(SECRET, None, BODY)
