from decimal import Decimal

import pytest
from careersync.billing import emvco
from careersync.billing.emvco import Tag, TLVDecodeError, TLVEncodeError

MERCHANT_TAGS = [
    Tag("00", "01"),
    Tag("01", "11"),
    Tag("26", "0010ph.ppmi.p2m0111TESTBANKXXX"),
    Tag("52", "6016"),
    Tag("53", "608"),
    Tag("58", "PH"),
    Tag("59", "CAREERSYNC"),
    Tag("60", "MANILA"),
]

def _static_payload(tags=MERCHANT_TAGS):
    body = emvco.serialize(tags) + emvco.CRC_SENTINEL
    return body + emvco.checksum(body)

def test_checksum_reference_vector():
    # CRC-16/CCITT-FALSE check value
    assert emvco.checksum("123456789") == "29B1"

def test_checksum_is_four_uppercase_hex_chars():
    value = emvco.checksum("00020101021153036085802PH6304")
    assert len(value) == 4
    assert value == value.upper()
    int(value, 16)

def test_parse_round_trips_well_formed_payload():
    payload = _static_payload()
    tags = emvco.parse(payload, strict=True)
    assert [t.tag for t in tags] == ["00", "01", "26", "52", "53", "58", "59", "60", "63"]
    assert tags[-1].value == emvco.checksum(payload[:-4])

def test_lenient_parse_stops_at_truncated_header():
    assert emvco.parse("000201ZZ") == [Tag("00", "01")]

def test_strict_parse_rejects_truncated_header():
    with pytest.raises(TLVDecodeError):
        emvco.parse("000201ZZ", strict=True)

def test_lenient_parse_stops_at_non_decimal_length():
    assert emvco.parse("0002010AXY") == [Tag("00", "01")]

def test_strict_parse_rejects_non_decimal_length():
    with pytest.raises(TLVDecodeError):
        emvco.parse("0002010AXY", strict=True)

def test_lenient_parse_keeps_short_value_strict_rejects_it():
    assert emvco.parse("000201" + "5905AB") == [Tag("00", "01"), Tag("59", "AB")]
    with pytest.raises(TLVDecodeError):
        emvco.parse("000201" + "5905AB", strict=True)

def test_serialize_rejects_values_over_99_chars():
    assert emvco.serialize([Tag("62", "x" * 99)]).startswith("6299")
    with pytest.raises(TLVEncodeError):
        emvco.serialize([Tag("62", "x" * 100)])

def test_serialize_rejects_bad_tag_id():
    with pytest.raises(TLVEncodeError):
        emvco.serialize([Tag("5", "PH")])

def test_format_amount_rounds_half_up():
    assert emvco.format_amount(Decimal("1.01")) == "1.01"
    assert emvco.format_amount("1.005") == "1.01"
    assert emvco.format_amount(2) == "2.00"
    with pytest.raises(TLVEncodeError):
        emvco.format_amount("-1")

def test_strip_checksum_handles_full_and_bare_sentinel():
    assert emvco.strip_checksum("5802PH6304ABCD") == "5802PH"
    assert emvco.strip_checksum("5802PH6304") == "5802PH"
    assert emvco.strip_checksum("5802PH") == "5802PH"

def test_dynamic_payload_inserts_amount_before_country_code():
    dynamic = emvco.build_dynamic_payload(_static_payload(), Decimal("1.01"))
    tags = emvco.parse(dynamic, strict=True)
    ids = [t.tag for t in tags]

    assert ids == ["00", "01", "26", "52", "53", "54", "58", "59", "60", "63"]
    assert dict(tags)["54"] == "1.01"
    # Point of initiation flips static -> dynamic
    assert dict(tags)["01"] == emvco.POI_DYNAMIC
    assert dynamic[-8:-4] == emvco.CRC_SENTINEL
    assert dynamic[-4:] == emvco.checksum(dynamic[:-4])

def test_dynamic_payload_updates_existing_amount_in_place():
    tags = list(MERCHANT_TAGS)
    tags.insert(5, Tag("54", "9.99"))
    dynamic = emvco.build_dynamic_payload(_static_payload(tags), "2.05")
    parsed = emvco.parse(dynamic, strict=True)
    assert [t.value for t in parsed if t.tag == "54"] == ["2.05"]

def test_dynamic_payload_appends_amount_without_country_code():
    tags = [t for t in MERCHANT_TAGS if t.tag != "58"]
    dynamic = emvco.build_dynamic_payload(_static_payload(tags), "1.00")
    ids = [t.tag for t in emvco.parse(dynamic, strict=True)]
    assert ids[-2:] == ["54", "63"]

def test_dynamic_payload_is_deterministic_and_idempotent():
    static = _static_payload()
    first = emvco.build_dynamic_payload(static, "1.01")
    assert emvco.build_dynamic_payload(static, "1.01") == first
    assert emvco.build_dynamic_payload(first, "1.01") == first

def test_one_centavo_changes_the_checksum():
    static = _static_payload()
    a = emvco.build_dynamic_payload(static, "1.01")
    b = emvco.build_dynamic_payload(static, "1.02")
    assert a[-4:] != b[-4:]

def test_session_payload_uses_centavos_and_requires_static_qr():
    assert emvco.session_payload(None, 101) is None
    assert emvco.session_payload("", 101) is None
    payload = emvco.session_payload(_static_payload(), 101)
    assert dict(emvco.parse(payload))["54"] == "1.01"
