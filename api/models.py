"""
API request and response models for Staylist REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Field names on the wire are camelCase (avatarUrl) to match the public API;
Python attribute names stay snake_case via aliases.
"""

from enum import Enum
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from auth.models import User

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

DEFAULT_AVATAR_URL = "/static/default-avatar.png"

# Names and emails are trimmed. Passwords are never altered before hashing.
Email = Annotated[str, StringConstraints(strip_whitespace=True, max_length=255, pattern=EMAIL_PATTERN)]


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class UserTypeEnum(str, Enum):
    regular = "regular"
    pro = "pro"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=15)]
    email: Email
    password: str = Field(..., min_length=6, max_length=12)
    type: UserTypeEnum = UserTypeEnum.regular


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: Email
    password: str = Field(..., min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    """Response for a successful POST /api/v1/auth/login."""

    model_config = ConfigDict(frozen=True)

    token: str


class UserPublic(BaseModel):
    """Public view of a user. Never carries the password digest."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    email: str
    avatar_url: str = Field(DEFAULT_AVATAR_URL, alias="avatarUrl")
    type: UserTypeEnum

    @classmethod
    def from_user(cls, user: User) -> "UserPublic":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            avatar_url=user.avatar_url or DEFAULT_AVATAR_URL,
            type=UserTypeEnum(user.user_type),
        )


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
