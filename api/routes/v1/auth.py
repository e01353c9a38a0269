"""
api/routes/v1/auth.py -- Registration, login, and session status endpoints.

Routes:
  POST /api/v1/auth/register   -- create an account; 201 with public user
  POST /api/v1/auth/login      -- email/password login; 200 with bearer token
  GET  /api/v1/auth/status     -- current user (requires auth)
  POST /api/v1/auth/logout     -- 204 (requires auth)

Security:
  [H2] POST /login is rate-limited per IP (LOGIN_RATE_LIMIT, default 10/minute).
  [C1] PasswordHasher.authenticate_user() provides timing equalization -- use
       it, never inline find_by_email() + check_password().
  [M5] Cache-Control: no-store on login responses.

Logout is stateless: tokens are not stored, so there is nothing to revoke.
The client discards its token; it stays valid until exp.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.concurrency import run_in_threadpool

from api.limiter import limiter
from api.models import LoginRequest, RegisterRequest, TokenResponse, UserPublic
from auth.dependencies import get_current_user
from auth.models import User
from auth.passwords import PasswordHasher
from auth.store import UserStore
from auth.tokens import TokenCodec
from core.config import get_settings

logger = logging.getLogger("staylist.api")

# Auth policy:
# - POST /api/v1/auth/register: public
# - POST /api/v1/auth/login:    public -- login endpoint must be unauthenticated
# - GET  /api/v1/auth/status:   requires auth (get_current_user)
# - POST /api/v1/auth/logout:   requires auth (get_current_user)
router = APIRouter()


def _login_rate_limit() -> str:
    return get_settings().login_rate_limit


def _email_taken() -> HTTPException:
    return HTTPException(
        status_code=409,
        detail={"code": "email_taken", "message": "User with this email already exists."},
    )


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=UserPublic, status_code=201)
async def register(request: Request, body: RegisterRequest) -> UserPublic:
    """Create a new account. The password is stored only as an Argon2id digest.

    Returns 409 if the email is already registered. The IntegrityError branch
    covers two concurrent registrations racing past the find_by_email check.
    """
    user_store: UserStore = request.app.state.user_store
    hasher: PasswordHasher = request.app.state.hasher

    if await user_store.find_by_email(body.email) is not None:
        raise _email_taken()

    digest = await run_in_threadpool(hasher.hash_password, body.password)
    user = User(name=body.name, email=body.email, user_type=body.type.value, password_digest=digest)
    try:
        user.id = await run_in_threadpool(user_store.create_user, user)
    except IntegrityError:
        raise _email_taken() from None

    logger.info("Registered user %s", user.id)
    return UserPublic.from_user(user)


@limiter.limit(_login_rate_limit)  # [H2] brute-force mitigation -- must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=TokenResponse)
async def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a bearer token.

    Returns the same generic error for unknown email and wrong password
    ("bad_credentials") so the response does not reveal which accounts exist.
    """
    user_store: UserStore = request.app.state.user_store
    hasher: PasswordHasher = request.app.state.hasher
    codec: TokenCodec = request.app.state.token_codec

    user = await hasher.authenticate_user(user_store, body.email, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid login or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    token = codec.issue(user.id, user.email)
    resp = JSONResponse(status_code=200, content=TokenResponse(token=token).model_dump())
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/status", response_model=UserPublic)
async def status(current_user: User = Depends(get_current_user)) -> UserPublic:
    """Return the public profile of the currently authenticated user."""
    return UserPublic.from_user(current_user)


@router.post("/auth/logout", status_code=204)
async def logout(current_user: User = Depends(get_current_user)) -> Response:
    """End the session client-side. Nothing is revoked server-side."""
    return Response(status_code=204)
