"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores, the token
codec, and routes do the work; these classes only own the shape.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered Staylist account.

    id is an opaque string (uuid4 hex) assigned by the store on creation. It is
    the subject carried in bearer tokens.

    password_digest is the 64-byte Argon2id digest of the password and the
    server pepper -- never the plaintext.
    """

    name: str
    email: str
    user_type: str = "regular"  # "regular", "pro"
    id: str | None = None
    password_digest: bytes | None = None
    avatar_url: str | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class TokenClaims:
    """The identity a verified bearer token vouches for.

    email is a denormalized, informational claim. Authorization decisions use
    subject_id and the freshly looked-up User, not the email in the token.
    """

    subject_id: str
    email: str
