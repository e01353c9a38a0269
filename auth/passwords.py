"""
auth/passwords.py -- Password digest derivation, verification, and login check.

Security design decisions:
  KDF: Argon2id via argon2-cffi's raw API (argon2.low_level.hash_secret_raw).
       Argon2id is memory-hard with tunable time and memory costs, which makes
       offline brute force expensive on GPUs and ASICs. Output is a fixed
       64-byte digest, not an encoded "$argon2id$..." string.

  Pepper: one server-wide secret (PASSWORD_PEPPER) is used as the Argon2 salt.
       This is a known limitation, not an oversight: there is no per-user salt,
       so two users with the same password have the same digest. The pepper is
       never stored next to the digests, so a database dump alone is not enough
       to start cracking. Argon2 needs a salt of at least 8 bytes, which the
       settings validator enforces.

  Comparison: hmac.compare_digest on bytes. It checks length first and then
       compares the full byte range without early exit, so response time does
       not reveal how many leading bytes matched.

  Timing equalization: authenticate_user() always runs one Argon2 derivation,
       even when the email is unknown, so response time does not reveal
       whether an account exists [C1].

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import hmac
from typing import TYPE_CHECKING

from argon2.low_level import Type, hash_secret_raw
from starlette.concurrency import run_in_threadpool

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserLookup
    from core.config import Settings

DIGEST_LENGTH = 64

# argon2-cffi's RFC 9106 low-memory profile: 3 passes over 64 MiB, 4 lanes.
_TIME_COST = 3
_MEMORY_COST = 64 * 1024  # KiB
_PARALLELISM = 4


def derive_digest(
    password: str,
    pepper: str,
    time_cost: int = _TIME_COST,
    memory_cost: int = _MEMORY_COST,
    parallelism: int = _PARALLELISM,
) -> bytes:
    """Return the 64-byte Argon2id digest of password keyed by the server pepper.

    Deterministic: the same (password, pepper, costs) always yields the same
    bytes, which is what lets verify_digest() work by recomputation.
    """
    return hash_secret_raw(
        password.encode("utf-8"),
        pepper.encode("utf-8"),
        time_cost=time_cost,
        memory_cost=memory_cost,
        parallelism=parallelism,
        hash_len=DIGEST_LENGTH,
        type=Type.ID,
    )


def verify_digest(
    password: str,
    stored_digest: bytes,
    pepper: str,
    time_cost: int = _TIME_COST,
    memory_cost: int = _MEMORY_COST,
    parallelism: int = _PARALLELISM,
) -> bool:
    """Return True if password derives to stored_digest. Constant-time compare."""
    candidate = derive_digest(password, pepper, time_cost=time_cost, memory_cost=memory_cost, parallelism=parallelism)
    return hmac.compare_digest(candidate, bytes(stored_digest))


class PasswordHasher:
    """derive_digest / verify_digest bound to the configured pepper and costs.

    Built once at startup from Settings and shared by reference; it holds no
    mutable state.
    """

    def __init__(
        self,
        pepper: str,
        time_cost: int = _TIME_COST,
        memory_cost: int = _MEMORY_COST,
        parallelism: int = _PARALLELISM,
    ) -> None:
        self._pepper = pepper
        self._costs = {"time_cost": time_cost, "memory_cost": memory_cost, "parallelism": parallelism}
        # Timing equalization digest [C1]. Computed once so the first login
        # attempt is not measurably slower than later ones.
        self._dummy_digest = self.hash_password("staylist_timing_dummy")

    @classmethod
    def from_settings(cls, settings: Settings) -> PasswordHasher:
        return cls(
            settings.password_pepper,
            time_cost=settings.argon2_time_cost,
            memory_cost=settings.argon2_memory_cost,
            parallelism=settings.argon2_parallelism,
        )

    def __repr__(self) -> str:
        costs = ", ".join(f"{k}={v}" for k, v in self._costs.items())
        return f"PasswordHasher({costs})"

    def hash_password(self, plain: str) -> bytes:
        return derive_digest(plain, self._pepper, **self._costs)

    def check_password(self, plain: str, digest: bytes) -> bool:
        return verify_digest(plain, digest, self._pepper, **self._costs)

    async def authenticate_user(self, users: UserLookup, email: str, password: str) -> User | None:
        """Authenticate an email/password login with timing equalization.

        Always runs Argon2 whether or not the user exists:
        - Unknown email: Argon2 runs against the dummy digest (same cost)
        - Wrong password: Argon2 runs against the real digest (same cost)

        Argon2 runs in the threadpool so a login does not stall the event loop.
        Returns the User on success, None on any failure.
        """
        user = await users.find_by_email(email)
        if user is None or user.password_digest is None:
            # Equalize timing -- do NOT return early before running Argon2 [C1]
            await run_in_threadpool(self.check_password, password, self._dummy_digest)
            return None
        if not await run_in_threadpool(self.check_password, password, user.password_digest):
            return None
        return user
