"""
API request and response models for TeamRoster REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
teams/models.py, which own the internal domain representation. Route handlers
map between the two.

Every response uses the same envelope:
    {"success": bool, "data": ..., "errors": [...], "msg": "...", "code": "..."}
errors[0] is the message a client should show; code is the machine-readable
error kind from core/errors.py.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import User
from auth.service import EMAIL_PATTERN
from teams.models import Team

# bcrypt ignores everything after 72 bytes
_BCRYPT_MAX_BYTES = 72


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


class Envelope(BaseModel):
    """Top-level response envelope for success and failure alike."""

    success: bool
    data: Optional[Any] = None
    errors: Optional[list[str]] = None
    msg: Optional[str] = None
    code: Optional[str] = None


def ok(data: Any = None, msg: Optional[str] = None, errors: Optional[list[str]] = None) -> dict:
    """Build a success envelope as a plain dict, dropping unset keys."""
    return Envelope(success=True, data=data, msg=msg, errors=errors).model_dump(exclude_none=True)


def fail(code: str, errors: list[str]) -> dict:
    """Build a failure envelope as a plain dict."""
    return Envelope(success=False, code=code, errors=errors).model_dump(exclude_none=True)


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v: str) -> str:
        if len(v.encode("utf-8")) > _BCRYPT_MAX_BYTES:
            raise ValueError("Password must be at most 72 bytes")
        return v


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    No format checks beyond length: a malformed email must fail with the same
    invalid_credentials error as a wrong password, not a 422.
    """

    email: str = Field(max_length=255)
    password: str = Field(max_length=128)


class DeleteAccountRequest(BaseModel):
    """Request body for DELETE /api/v1/auth/delete."""

    password: str = Field(max_length=128)


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    name: str
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(id=user.id, email=user.email, name=user.name, created_at=user.created_at or "")


# ---------------------------------------------------------------------------
# Teams -- request models
# ---------------------------------------------------------------------------


class TeamCreate(BaseModel):
    """Request body for POST /api/v1/teams."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=1000)


class TeamUpdate(BaseModel):
    """Request body for PUT/PATCH /api/v1/teams/{team_id}. Unset fields are left alone."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)


class MemberRequest(BaseModel):
    """Request body for POST/DELETE /api/v1/teams/{team_id}/members."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Teams -- response models
# ---------------------------------------------------------------------------


class TeamResponse(BaseModel):
    """A team with its roster as user ids."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: str
    owner: int
    admins: list[int]
    members: list[int]
    version: int
    created_at: str
    updated_at: str

    @classmethod
    def from_team(cls, team: Team) -> "TeamResponse":
        """Factory Method -- the domain-to-wire mapping lives next to the wire model."""
        return cls(
            id=team.id,
            name=team.name,
            description=team.description,
            owner=team.owner_id,
            admins=team.admin_ids,
            members=team.member_ids,
            version=team.version,
            created_at=team.created_at,
            updated_at=team.updated_at,
        )


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
