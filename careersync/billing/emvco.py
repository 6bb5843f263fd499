"""
EMVCo / QRPh TLV codec.

A payload is a flat ASCII string of tag(2) + length(2, decimal) + value(length)
records, terminated by the checksum record "6304" + CRC-16 of everything
before it (the "6304" prefix included).

Parsing has two explicit modes:
  - lenient (default): stop quietly at malformed trailing input; a value cut
    short by the end of input is returned as-is.
  - strict: raise TLVDecodeError on any of the above.

Serializing rejects values longer than 99 characters (the length field is two
decimal digits); nothing is widened or truncated.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, NamedTuple, Optional, Union

TAG_POINT_OF_INITIATION = "01"
TAG_TRANSACTION_AMOUNT = "54"
TAG_COUNTRY_CODE = "58"
TAG_CRC = "63"

POI_STATIC = "11"
POI_DYNAMIC = "12"

CRC_SENTINEL = TAG_CRC + "04"
MAX_VALUE_LENGTH = 99


class TLVDecodeError(ValueError):
    pass


class TLVEncodeError(ValueError):
    pass


class Tag(NamedTuple):
    tag: str
    value: str


def parse(payload: str, strict: bool = False) -> List[Tag]:
    tags: List[Tag] = []
    i = 0
    n = len(payload)
    while i < n:
        if i + 4 > n:
            if strict:
                raise TLVDecodeError(f"truncated record header at offset {i}")
            break
        tag_id = payload[i:i + 2]
        length_field = payload[i + 2:i + 4]
        if not length_field.isdigit():
            if strict:
                raise TLVDecodeError(f"non-decimal length {length_field!r} for tag {tag_id!r} at offset {i}")
            break
        length = int(length_field)
        value = payload[i + 4:i + 4 + length]
        if strict and len(value) != length:
            raise TLVDecodeError(f"tag {tag_id!r} declares {length} chars, {len(value)} available")
        tags.append(Tag(tag_id, value))
        i += 4 + length
    return tags


def serialize(tags: Iterable[Tag]) -> str:
    out = []
    for tag_id, value in tags:
        if len(tag_id) != 2:
            raise TLVEncodeError(f"tag id must be 2 characters, got {tag_id!r}")
        if len(value) > MAX_VALUE_LENGTH:
            raise TLVEncodeError(f"value for tag {tag_id!r} is {len(value)} chars; max is {MAX_VALUE_LENGTH}")
        out.append(f"{tag_id}{len(value):02d}{value}")
    return "".join(out)


def checksum(payload: str) -> str:
    """CRC-16/CCITT-FALSE over the low byte of each character."""
    crc = 0xFFFF
    for ch in payload:
        crc ^= (ord(ch) & 0xFF) << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ 0x1021) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return f"{crc:04X}"


def strip_checksum(payload: str) -> str:
    """Drop a trailing "6304XXXX" block (or a bare trailing "6304")."""
    if len(payload) >= 8 and payload[-8:-4] == CRC_SENTINEL:
        return payload[:-8]
    if payload.endswith(CRC_SENTINEL):
        return payload[:-4]
    return payload


def format_amount(amount: Union[Decimal, int, float, str]) -> str:
    value = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    if value < 0:
        raise TLVEncodeError(f"amount must be non-negative, got {amount!r}")
    return f"{value:.2f}"


def build_dynamic_payload(static_payload: str, amount: Union[Decimal, int, float, str]) -> str:
    """
    Derive a dynamic QR payload carrying exactly ``amount`` (major units).

    Tag 54 is updated in place when present, otherwise inserted right before
    tag 58 (or appended). A static point-of-initiation (01=11) becomes
    dynamic (01=12). Running this on its own output is a no-op.
    """
    tags = parse(strip_checksum(static_payload))
    amount_str = format_amount(amount)

    idx_amount = next((i for i, t in enumerate(tags) if t.tag == TAG_TRANSACTION_AMOUNT), None)
    if idx_amount is not None:
        tags[idx_amount] = Tag(TAG_TRANSACTION_AMOUNT, amount_str)
    else:
        idx_country = next((i for i, t in enumerate(tags) if t.tag == TAG_COUNTRY_CODE), len(tags))
        tags.insert(idx_country, Tag(TAG_TRANSACTION_AMOUNT, amount_str))

    idx_poi = next((i for i, t in enumerate(tags) if t.tag == TAG_POINT_OF_INITIATION), None)
    if idx_poi is not None and tags[idx_poi].value == POI_STATIC:
        tags[idx_poi] = Tag(TAG_POINT_OF_INITIATION, POI_DYNAMIC)

    body = serialize(tags) + CRC_SENTINEL
    return body + checksum(body)


def session_payload(static_payload: Optional[str], amount_minor: int) -> Optional[str]:
    """Dynamic payload for an integer centavo amount; None when no static QR is configured."""
    if not static_payload:
        return None
    major = Decimal(int(amount_minor)) / Decimal(100)
    return build_dynamic_payload(static_payload.strip(), major)
