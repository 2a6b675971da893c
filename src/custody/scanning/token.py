"""QR token codec.

A container's QR token carries its identity plus an integrity check:

    CT1.<base64url("container_id|shipment_id|ordinal")>.<hmac-sha256, 32 hex chars>

The HMAC key comes from CUSTODY_QR_SECRET. Tokens are opaque to callers;
decoding either yields the embedded identity or raises InvalidToken.
"""

import base64
import binascii
import hashlib
import hmac
import os
from dataclasses import dataclass

from custody.errors import InvalidToken

TOKEN_PREFIX = "CT1"
SIGNATURE_LENGTH = 32
DEFAULT_SECRET = "custody-dev-secret"


@dataclass(frozen=True)
class DecodedToken:
    container_id: str
    shipment_id: str
    ordinal: int


def _secret() -> bytes:
    return os.environ.get("CUSTODY_QR_SECRET", DEFAULT_SECRET).encode("utf-8")


def _sign(payload: str) -> str:
    return hmac.new(_secret(), payload.encode("utf-8"), hashlib.sha256).hexdigest()[:SIGNATURE_LENGTH]


def encode_token(container_id: str, shipment_id: str, ordinal: int) -> str:
    raw = f"{container_id}|{shipment_id}|{ordinal}".encode()
    payload = base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")
    return f"{TOKEN_PREFIX}.{payload}.{_sign(payload)}"


def normalize_raw(raw: str | None) -> str:
    """Trim scanner noise: whitespace and one surrounding pair of quotes."""
    if not raw:
        return ""
    normalized = raw.strip()
    if len(normalized) >= 2 and normalized[0] == normalized[-1] and normalized[0] in "\"'":
        normalized = normalized[1:-1].strip()
    return normalized


def decode_token(raw: str | None) -> DecodedToken:
    token = normalize_raw(raw)
    parts = token.split(".")
    if len(parts) != 3 or parts[0] != TOKEN_PREFIX:
        raise InvalidToken("Unrecognised QR token format")

    _, payload, signature = parts
    if not hmac.compare_digest(_sign(payload).encode("ascii"), signature.lower().encode("utf-8")):
        raise InvalidToken("QR token integrity check failed")

    try:
        padded = payload + "=" * (-len(payload) % 4)
        container_id, shipment_id, ordinal = base64.urlsafe_b64decode(padded).decode("utf-8").split("|")
        return DecodedToken(container_id=container_id, shipment_id=shipment_id, ordinal=int(ordinal))
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise InvalidToken("QR token payload is malformed") from exc
