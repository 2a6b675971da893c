"""Tests for the QR token codec."""

import base64

import pytest
from custody.errors import InvalidToken
from custody.scanning.token import TOKEN_PREFIX, _sign, decode_token, encode_token, normalize_raw

CONTAINER_ID = "CNT-ABABABABABAB-0001"
SHIPMENT_ID = "0x" + "ab" * 32


class TestEncodeDecode:
    def test_decode_returns_embedded_identity(self):
        decoded = decode_token(encode_token(CONTAINER_ID, SHIPMENT_ID, 1))
        assert decoded.container_id == CONTAINER_ID
        assert decoded.shipment_id == SHIPMENT_ID
        assert decoded.ordinal == 1

    def test_token_shape(self):
        token = encode_token(CONTAINER_ID, SHIPMENT_ID, 1)
        prefix, payload, signature = token.split(".")
        assert prefix == TOKEN_PREFIX
        assert "=" not in payload
        assert len(signature) == 32

    def test_upper_case_signature_is_accepted(self):
        prefix, payload, signature = encode_token(CONTAINER_ID, SHIPMENT_ID, 1).split(".")
        decoded = decode_token(f"{prefix}.{payload}.{signature.upper()}")
        assert decoded.ordinal == 1


class TestNormalisation:
    def test_whitespace_and_quotes_are_stripped(self):
        token = encode_token(CONTAINER_ID, SHIPMENT_ID, 1)
        assert normalize_raw(f'  "{token}"\n') == token
        assert decode_token(f"'{token}'").container_id == CONTAINER_ID

    def test_empty(self):
        assert normalize_raw(None) == ""
        assert normalize_raw("   ") == ""


class TestIntegrity:
    def test_tampered_payload_is_rejected(self):
        prefix, _, signature = encode_token(CONTAINER_ID, SHIPMENT_ID, 1).split(".")
        forged = base64.urlsafe_b64encode(f"{CONTAINER_ID}|{SHIPMENT_ID}|2".encode()).decode().rstrip("=")
        with pytest.raises(InvalidToken):
            decode_token(f"{prefix}.{forged}.{signature}")

    def test_tampered_signature_is_rejected(self):
        token = encode_token(CONTAINER_ID, SHIPMENT_ID, 1)
        with pytest.raises(InvalidToken):
            decode_token(token[:-1] + ("0" if token[-1] != "0" else "1"))

    @pytest.mark.parametrize("raw", ["", "garbage", "CT1.only-two", "CT2.abc.def", "CT1.a.b.c"])
    def test_unrecognised_format(self, raw):
        with pytest.raises(InvalidToken):
            decode_token(raw)

    def test_non_ascii_signature_is_rejected_cleanly(self):
        _, payload, _ = encode_token(CONTAINER_ID, SHIPMENT_ID, 1).split(".")
        with pytest.raises(InvalidToken):
            decode_token(f"CT1.{payload}.ü")

    def test_signed_but_malformed_payload(self):
        payload = base64.urlsafe_b64encode(b"no-separators-here").decode().rstrip("=")
        with pytest.raises(InvalidToken) as exc:
            decode_token(f"CT1.{payload}.{_sign(payload)}")
        assert "malformed" in exc.value.message

    def test_token_signed_with_another_secret(self, monkeypatch):
        token = encode_token(CONTAINER_ID, SHIPMENT_ID, 1)
        monkeypatch.setenv("CUSTODY_QR_SECRET", "rotated-secret")
        with pytest.raises(InvalidToken):
            decode_token(token)
