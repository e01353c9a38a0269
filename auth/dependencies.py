"""
auth/dependencies.py -- The authentication gate and its FastAPI Depends() helpers.

One AuthGate class runs the shared steps for every request:
  1. Extract the token from "Authorization: Bearer <token>" (exact scheme,
     one space, no further spaces).
  2. Verify it with the TokenCodec.
  3. Resolve the subject with the UserLookup collaborator.
  4. Attach the User to request.state.user.

The two policies differ only in what happens when any step fails:
  required_auth() -- raise HTTP 401 (same body for every failed step).
  optional_auth() -- carry on with request.state.user = None.

Gates are built once in the app lifespan (api/main.py) from the configured
codec and user store, and stored on app.state. get_current_user() and
try_get_current_user() are the route-facing dependencies that delegate to
them.

Nothing here logs a token, writes a token, or touches a user record.

Layer rule: no imports from api/ or core/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

import logging

from fastapi import HTTPException, Request

from auth.models import User
from auth.store import UserLookup
from auth.tokens import TokenCodec

logger = logging.getLogger("staylist.auth")

_SCHEME = "Bearer"


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token from an Authorization header value, or None.

    Only "Bearer <token>" is accepted: case-sensitive scheme, exactly one
    space, and a non-empty token that itself contains no spaces.
    """
    if not authorization:
        return None
    scheme, sep, token = authorization.partition(" ")
    if scheme != _SCHEME or not sep or not token or " " in token:
        return None
    return token


def _unauthenticated() -> HTTPException:
    return HTTPException(
        status_code=401,
        detail={"code": "unauthorized", "message": "Authentication required."},
        headers={"WWW-Authenticate": _SCHEME},
    )


class AuthGate:
    """Request-scoped authentication with a required or optional policy.

    Callable as a FastAPI dependency. Holds only references to the user lookup
    and codec, both safe to share across concurrent requests.
    """

    def __init__(self, users: UserLookup, codec: TokenCodec, required: bool) -> None:
        self.users = users
        self.codec = codec
        self.required = required

    def __repr__(self) -> str:
        policy = "required" if self.required else "optional"
        return f"AuthGate(policy={policy!r}, codec={self.codec!r})"

    async def resolve(self, authorization: str | None) -> User | None:
        """Run extraction, verification, and lookup. None if any step fails."""
        token = extract_bearer_token(authorization)
        if token is None:
            return None
        claims = self.codec.verify(token)
        if claims is None:
            return None
        user = await self.users.find_by_id(claims.subject_id)
        if user is None:
            logger.debug("Bearer token subject no longer resolves to a user")
        return user

    async def __call__(self, request: Request) -> User | None:
        user = await self.resolve(request.headers.get("Authorization"))
        request.state.user = user
        if user is None and self.required:
            raise _unauthenticated()
        return user


def required_auth(users: UserLookup, codec: TokenCodec) -> AuthGate:
    """Gate that rejects the request with 401 unless it resolves to a user."""
    return AuthGate(users, codec, required=True)


def optional_auth(users: UserLookup, codec: TokenCodec) -> AuthGate:
    """Gate that attaches a user when it can and never rejects."""
    return AuthGate(users, codec, required=False)


async def try_get_current_user(request: Request) -> User | None:
    """Optional authentication. Returns the User or None, never raises.

    Use as a FastAPI dependency:
        @router.get("/offers")
        async def route(user: User | None = Depends(try_get_current_user)): ...
    """
    gate: AuthGate = request.app.state.optional_auth
    return await gate(request)


async def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    gate: AuthGate = request.app.state.required_auth
    return await gate(request)
