"""
auth/tokens.py -- Bearer token issuance and verification.

Security design decisions:
  Compact profile (default): "<b64url(payload-json)>.<b64url(HMAC-SHA256)>".
       The payload JSON has exactly the keys subjectId, email, exp (integer
       Unix seconds). The HMAC covers the encoded payload segment, and the
       signature is checked BEFORE the payload is decoded, so unauthenticated
       bytes are never parsed.

  JWT profile (TOKEN_FORMAT=jwt): python-jose with HS256. The verifier pins
       algorithms=["HS256"], so an "alg": "none" token or a token signed with
       any other algorithm is rejected -- no downgrade is possible.

  Comparison: hmac.compare_digest over the encoded signature bytes. Comparing
       the encoded form (not the decoded bytes) means every character of the
       signature segment is significant, including base64 padding bits.

  Expiry: exp >= now is valid, exp < now is expired. No clock-skew leeway.

  Failure collapse: verify() returns None on every failure. The reason is a
       TokenRejection logged at DEBUG for operators; callers cannot tell a bad
       signature from an expired token. The token itself is never logged.

  Statelessness: nothing is stored. A token is valid exactly when its bytes
       verify under SECRET_KEY and exp has not passed.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import base64
import enum
import hashlib
import hmac
import json
import logging
import time
from typing import TYPE_CHECKING, Any, Protocol

from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from auth.models import TokenClaims

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("staylist.auth")

DEFAULT_TTL_SECONDS = 24 * 60 * 60

_JWT_ALGORITHM = "HS256"


class TokenRejection(str, enum.Enum):
    """Internal-only reason a token failed verification."""

    MALFORMED = "malformed"
    BAD_SIGNATURE = "bad_signature"
    BAD_PAYLOAD = "bad_payload"
    BAD_CLAIMS = "bad_claims"
    EXPIRED = "expired"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> int:
    return int(time.time())


def _as_key(secret: str | bytes) -> bytes:
    return secret.encode("utf-8") if isinstance(secret, str) else bytes(secret)


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64url_decode(segment: str) -> bytes:
    padding = "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(segment + padding)


def _sign(key: bytes, payload_segment: str) -> str:
    digest = hmac.new(key, payload_segment.encode("utf-8"), hashlib.sha256).digest()
    return _b64url_encode(digest)


def _claims_from_payload(payload: Any, subject_key: str) -> TokenClaims | None:
    """Return TokenClaims if payload carries a well-shaped subject, email and exp."""
    if not isinstance(payload, dict):
        return None
    subject_id = payload.get(subject_key)
    email = payload.get("email")
    exp = payload.get("exp")
    if not isinstance(subject_id, str) or not subject_id:
        return None
    if not isinstance(email, str):
        return None
    # bool is an int subclass; True must not pass as a timestamp.
    if not isinstance(exp, int) or isinstance(exp, bool):
        return None
    return TokenClaims(subject_id=subject_id, email=email)


# ---------------------------------------------------------------------------
# Compact HMAC profile -- pure functions
# ---------------------------------------------------------------------------


def issue_token(subject_id: str, email: str, secret: str | bytes, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> str:
    """Return a signed compact token for subject_id, valid for ttl_seconds from now.

    A negative ttl_seconds produces a token that is already expired.
    """
    payload = {"subjectId": subject_id, "email": email, "exp": _now() + ttl_seconds}
    payload_segment = _b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    return f"{payload_segment}.{_sign(_as_key(secret), payload_segment)}"


def check_token(token: str, secret: str | bytes) -> tuple[TokenClaims | None, TokenRejection | None]:
    """Verify a compact token and say why it failed, if it did.

    Exactly one element of the returned pair is None. Use verify_token() unless
    you need the reason -- and never show the reason to a client.
    """
    parts = token.split(".")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return None, TokenRejection.MALFORMED
    payload_segment, signature = parts

    expected = _sign(_as_key(secret), payload_segment)
    if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
        return None, TokenRejection.BAD_SIGNATURE

    try:
        payload = json.loads(_b64url_decode(payload_segment))
    except ValueError:
        # binascii.Error, UnicodeDecodeError and JSONDecodeError are all ValueErrors
        return None, TokenRejection.BAD_PAYLOAD

    claims = _claims_from_payload(payload, "subjectId")
    if claims is None:
        return None, TokenRejection.BAD_CLAIMS
    if payload["exp"] < _now():
        return None, TokenRejection.EXPIRED
    return claims, None


def verify_token(token: str, secret: str | bytes) -> TokenClaims | None:
    """Return the claims of a valid compact token, or None on any failure."""
    claims, rejection = check_token(token, secret)
    if rejection is not None:
        logger.debug("Bearer token rejected (%s)", rejection.value)
    return claims


# ---------------------------------------------------------------------------
# Codecs -- the profile objects the rest of the app holds
# ---------------------------------------------------------------------------


class TokenCodec(Protocol):
    """Issue and verify bearer tokens with a fixed secret and default TTL."""

    def issue(self, subject_id: str, email: str, ttl_seconds: int | None = None) -> str: ...

    def verify(self, token: str) -> TokenClaims | None: ...


class HmacTokenCodec:
    """Compact HMAC-SHA256 profile bound to one signing secret."""

    def __init__(self, secret: str | bytes, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        self._key = _as_key(secret)
        self.ttl_seconds = ttl_seconds

    def __repr__(self) -> str:
        return f"HmacTokenCodec(ttl_seconds={self.ttl_seconds})"

    def issue(self, subject_id: str, email: str, ttl_seconds: int | None = None) -> str:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        return issue_token(subject_id, email, self._key, ttl)

    def verify(self, token: str) -> TokenClaims | None:
        return verify_token(token, self._key)


class JwtTokenCodec:
    """HS256 JWT profile (python-jose) bound to one signing secret.

    Claims: sub (subject id), email, iat, exp. Only HS256 is accepted on decode.
    """

    def __init__(self, secret: str | bytes, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        self._key = _as_key(secret)
        self.ttl_seconds = ttl_seconds

    def __repr__(self) -> str:
        return f"JwtTokenCodec(algorithm={_JWT_ALGORITHM!r}, ttl_seconds={self.ttl_seconds})"

    def issue(self, subject_id: str, email: str, ttl_seconds: int | None = None) -> str:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        issued_at = _now()
        payload = {"sub": subject_id, "email": email, "iat": issued_at, "exp": issued_at + ttl}
        return jwt.encode(payload, self._key, algorithm=_JWT_ALGORITHM)

    def verify(self, token: str) -> TokenClaims | None:
        claims, rejection = self._check(token)
        if rejection is not None:
            logger.debug("Bearer token rejected (%s)", rejection.value)
        return claims

    def _check(self, token: str) -> tuple[TokenClaims | None, TokenRejection | None]:
        try:
            payload = jwt.decode(
                token,
                self._key,
                algorithms=[_JWT_ALGORITHM],
                options={"leeway": 0, "require_exp": True, "require_sub": True},
            )
        except ExpiredSignatureError:
            return None, TokenRejection.EXPIRED
        except JWTClaimsError:
            return None, TokenRejection.BAD_CLAIMS
        except JWTError:
            # jose reports broken structure and bad signatures with the same class
            return None, TokenRejection.BAD_SIGNATURE
        claims = _claims_from_payload(payload, "sub")
        if claims is None:
            return None, TokenRejection.BAD_CLAIMS
        return claims, None


def build_token_codec(settings: Settings) -> TokenCodec:
    """Return the codec for the configured TOKEN_FORMAT, keyed by SECRET_KEY."""
    if settings.token_format == "jwt":
        return JwtTokenCodec(settings.secret_key, ttl_seconds=settings.token_expire_seconds)
    return HmacTokenCodec(settings.secret_key, ttl_seconds=settings.token_expire_seconds)
