"""
tests/test_tokens.py -- Unit tests for bearer token issuance and verification.

Coverage:
  - Compact profile: wire format, round trip, expiry boundary, wrong secret,
    single-bit tampering anywhere in either segment, malformed shapes,
    well-signed but badly-shaped payloads, internal rejection reasons
  - JWT profile: round trip, expiry, wrong secret, "none" and HS512 rejected
  - build_token_codec honours TOKEN_FORMAT and never uses the pepper
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json

import pytest
from jose import jwt

from auth import tokens
from auth.models import TokenClaims
from auth.tokens import (
    DEFAULT_TTL_SECONDS,
    HmacTokenCodec,
    JwtTokenCodec,
    TokenRejection,
    build_token_codec,
    check_token,
    issue_token,
    verify_token,
)

SECRET = b"compact-secret-0123456789abcdef0123"
OTHER_SECRET = b"another-secret-0123456789abcdef0123"


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _signed(payload_segment: str, secret: bytes = SECRET) -> str:
    sig = hmac.new(secret, payload_segment.encode("ascii"), hashlib.sha256).digest()
    return f"{payload_segment}.{_b64(sig)}"


def _decode_payload(token: str) -> dict:
    segment = token.split(".")[0]
    return json.loads(base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4)))


@pytest.fixture
def frozen_clock(monkeypatch):
    """Pin auth.tokens._now to a settable value."""
    clock = {"now": 1_700_000_000}
    monkeypatch.setattr(tokens, "_now", lambda: clock["now"])
    return clock


# ---------------------------------------------------------------------------
# Compact profile
# ---------------------------------------------------------------------------


class TestCompactIssue:
    def test_wire_format(self, frozen_clock) -> None:
        token = issue_token("u1", "a@b.com", SECRET, ttl_seconds=3600)
        payload_segment, signature = token.split(".")
        assert "=" not in token and " " not in token
        assert _decode_payload(token) == {"subjectId": "u1", "email": "a@b.com", "exp": frozen_clock["now"] + 3600}
        assert token == _signed(payload_segment)
        assert len(base64.urlsafe_b64decode(signature + "=")) == 32

    def test_payload_json_has_no_whitespace(self) -> None:
        token = issue_token("u1", "a@b.com", SECRET)
        segment = token.split(".")[0]
        raw = base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4)).decode("utf-8")
        assert " " not in raw

    def test_default_ttl_is_24_hours(self, frozen_clock) -> None:
        assert DEFAULT_TTL_SECONDS == 86400
        token = issue_token("u1", "a@b.com", SECRET)
        assert _decode_payload(token)["exp"] == frozen_clock["now"] + 86400

    def test_str_and_bytes_secret_are_equivalent(self, frozen_clock) -> None:
        assert issue_token("u1", "a@b.com", SECRET.decode()) == issue_token("u1", "a@b.com", SECRET)


class TestCompactVerify:
    def test_round_trip(self) -> None:
        token = issue_token("u1", "a@b.com", SECRET, ttl_seconds=3600)
        assert verify_token(token, SECRET) == TokenClaims(subject_id="u1", email="a@b.com")

    def test_already_expired(self) -> None:
        token = issue_token("u1", "a@b.com", SECRET, ttl_seconds=-1)
        assert verify_token(token, SECRET) is None
        assert check_token(token, SECRET) == (None, TokenRejection.EXPIRED)

    def test_valid_at_exp_and_expired_one_second_later(self, frozen_clock) -> None:
        token = issue_token("u1", "a@b.com", SECRET, ttl_seconds=60)
        frozen_clock["now"] += 60
        assert verify_token(token, SECRET) is not None
        frozen_clock["now"] += 1
        assert verify_token(token, SECRET) is None

    def test_wrong_secret(self) -> None:
        token = issue_token("u1", "a@b.com", SECRET)
        assert verify_token(token, OTHER_SECRET) is None
        assert check_token(token, OTHER_SECRET)[1] is TokenRejection.BAD_SIGNATURE

    def test_every_single_bit_flip_is_rejected(self) -> None:
        token = issue_token("u1", "a@b.com", SECRET)
        for i, ch in enumerate(token):
            if ch == ".":
                continue
            for bit in range(7):
                tampered = token[:i] + chr(ord(ch) ^ (1 << bit)) + token[i + 1 :]
                assert verify_token(tampered, SECRET) is None, f"accepted flip of bit {bit} at {i}"

    def test_signature_byte_flip_is_rejected(self) -> None:
        token = issue_token("u1", "a@b.com", SECRET)
        payload_segment, signature = token.split(".")
        raw = bytearray(base64.urlsafe_b64decode(signature + "="))
        raw[0] ^= 0x01
        assert verify_token(f"{payload_segment}.{_b64(bytes(raw))}", SECRET) is None

    def test_swapped_payload_keeps_old_signature(self) -> None:
        token = issue_token("u1", "a@b.com", SECRET)
        forged_payload = _b64(json.dumps({"subjectId": "admin", "email": "a@b.com", "exp": 9999999999}).encode())
        assert verify_token(f"{forged_payload}.{token.split('.')[1]}", SECRET) is None

    @pytest.mark.parametrize(
        "token",
        ["", ".", "abc", "abc.", ".abc", "a.b.c", "a..b", "Ünïcode.ßig"],
    )
    def test_malformed(self, token: str) -> None:
        assert verify_token(token, SECRET) is None

    def test_malformed_reason(self) -> None:
        assert check_token("a.b.c", SECRET) == (None, TokenRejection.MALFORMED)

    def test_signed_garbage_payload(self) -> None:
        token = _signed(_b64(b"{not json"))
        assert check_token(token, SECRET) == (None, TokenRejection.BAD_PAYLOAD)

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            {"email": "a@b.com", "exp": 9999999999},
            {"subjectId": "", "email": "a@b.com", "exp": 9999999999},
            {"subjectId": 42, "email": "a@b.com", "exp": 9999999999},
            {"subjectId": "u1", "exp": 9999999999},
            {"subjectId": "u1", "email": None, "exp": 9999999999},
            {"subjectId": "u1", "email": "a@b.com"},
            {"subjectId": "u1", "email": "a@b.com", "exp": "9999999999"},
            {"subjectId": "u1", "email": "a@b.com", "exp": True},
            {"subjectId": "u1", "email": "a@b.com", "exp": 9999999999.5},
        ],
    )
    def test_signed_payload_with_bad_claims(self, payload) -> None:
        token = _signed(_b64(json.dumps(payload).encode()))
        assert check_token(token, SECRET) == (None, TokenRejection.BAD_CLAIMS)

    def test_hand_signed_valid_payload_is_accepted(self) -> None:
        token = _signed(_b64(json.dumps({"subjectId": "u9", "email": "z@y.com", "exp": 9999999999}).encode()))
        assert verify_token(token, SECRET) == TokenClaims("u9", "z@y.com")

    def test_rejection_is_logged_without_token(self, caplog) -> None:
        token = issue_token("u1", "a@b.com", SECRET, ttl_seconds=-1)
        with caplog.at_level("DEBUG", logger="staylist.auth"):
            verify_token(token, SECRET)
        assert "expired" in caplog.text
        assert token not in caplog.text


class TestHmacTokenCodec:
    def test_round_trip_with_default_ttl(self, frozen_clock) -> None:
        codec = HmacTokenCodec(SECRET, ttl_seconds=120)
        token = codec.issue("u1", "a@b.com")
        assert _decode_payload(token)["exp"] == frozen_clock["now"] + 120
        assert codec.verify(token) == TokenClaims("u1", "a@b.com")

    def test_ttl_override(self) -> None:
        codec = HmacTokenCodec(SECRET)
        assert codec.verify(codec.issue("u1", "a@b.com", ttl_seconds=-1)) is None

    def test_repr_hides_secret(self) -> None:
        assert SECRET.decode() not in repr(HmacTokenCodec(SECRET))

    def test_rejects_jwt(self) -> None:
        assert HmacTokenCodec(SECRET).verify(JwtTokenCodec(SECRET).issue("u1", "a@b.com")) is None


# ---------------------------------------------------------------------------
# JWT profile
# ---------------------------------------------------------------------------


class TestJwtTokenCodec:
    def test_round_trip(self) -> None:
        codec = JwtTokenCodec(SECRET)
        token = codec.issue("u1", "a@b.com", ttl_seconds=3600)
        assert codec.verify(token) == TokenClaims("u1", "a@b.com")

    def test_header_pins_hs256(self) -> None:
        token = JwtTokenCodec(SECRET).issue("u1", "a@b.com")
        assert jwt.get_unverified_header(token)["alg"] == "HS256"

    def test_expired(self) -> None:
        codec = JwtTokenCodec(SECRET)
        assert codec.verify(codec.issue("u1", "a@b.com", ttl_seconds=-1)) is None
        assert codec._check(codec.issue("u1", "a@b.com", ttl_seconds=-1)) == (None, TokenRejection.EXPIRED)

    def test_wrong_secret(self) -> None:
        token = JwtTokenCodec(SECRET).issue("u1", "a@b.com")
        assert JwtTokenCodec(OTHER_SECRET).verify(token) is None

    def test_unsigned_none_algorithm_rejected(self) -> None:
        header = _b64(json.dumps({"alg": "none", "typ": "JWT"}).encode())
        payload = _b64(json.dumps({"sub": "u1", "email": "a@b.com", "exp": 9999999999}).encode())
        assert JwtTokenCodec(SECRET).verify(f"{header}.{payload}.") is None

    def test_other_hmac_algorithm_rejected(self) -> None:
        token = jwt.encode({"sub": "u1", "email": "a@b.com", "exp": 9999999999}, SECRET, algorithm="HS512")
        assert JwtTokenCodec(SECRET).verify(token) is None

    def test_missing_email_claim_rejected(self) -> None:
        token = jwt.encode({"sub": "u1", "exp": 9999999999}, SECRET, algorithm="HS256")
        assert JwtTokenCodec(SECRET).verify(token) is None

    def test_tampered_payload_rejected(self) -> None:
        token = JwtTokenCodec(SECRET).issue("u1", "a@b.com")
        header, _payload, signature = token.split(".")
        forged = _b64(json.dumps({"sub": "admin", "email": "a@b.com", "exp": 9999999999}).encode())
        assert JwtTokenCodec(SECRET).verify(f"{header}.{forged}.{signature}") is None

    def test_rejects_compact_token(self) -> None:
        assert JwtTokenCodec(SECRET).verify(issue_token("u1", "a@b.com", SECRET)) is None


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


class TestBuildTokenCodec:
    def test_default_is_compact(self, settings) -> None:
        codec = build_token_codec(settings)
        assert isinstance(codec, HmacTokenCodec)
        assert codec.ttl_seconds == settings.token_expire_seconds

    def test_jwt_format(self, settings) -> None:
        codec = build_token_codec(settings.model_copy(update={"token_format": "jwt"}))
        assert isinstance(codec, JwtTokenCodec)

    def test_signs_with_secret_key_not_pepper(self, settings) -> None:
        token = build_token_codec(settings).issue("u1", "a@b.com")
        assert verify_token(token, settings.secret_key) is not None
        assert verify_token(token, settings.password_pepper) is None
