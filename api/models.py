"""
API request and response models for NexusAuth REST endpoints.

These Pydantic v2 models define the HTTP transport contract consumed by the
browser client. They are intentionally separate from the dataclasses in
auth/models.py, which own the internal domain representation. Route handlers
map between the two.

The client expects camelCase keys on the user object (lastLogin,
securityScore); those are serialization aliases, so Python code stays
snake_case and responses are dumped with by_alias=True.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import PublicProfile

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/auth/register.

    Presence (non-empty) is checked by the Authenticator, not here, so the
    same rule applies to any caller of the service.
    """

    name: str = Field(max_length=255)
    email: str = Field(max_length=255)
    password: str = Field(max_length=255)


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login."""

    email: str = Field(max_length=255)
    password: str = Field(max_length=255)


class ProfileUpdateRequest(BaseModel):
    """Request body for PUT /api/user/profile.

    id names the record to change and must match the token's subject.
    Omitted (or null) name/bio are left as they are.
    """

    id: str = Field(min_length=1, max_length=64)
    name: Optional[str] = Field(default=None, max_length=255)
    bio: Optional[str] = Field(default=None, max_length=2000)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public-safe user projection. Never carries the password hash."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    email: str
    bio: str
    last_login: str = Field(serialization_alias="lastLogin")
    security_score: int = Field(serialization_alias="securityScore")

    @classmethod
    def from_profile(cls, profile: PublicProfile) -> "UserResponse":
        """Build a UserResponse from the domain projection."""
        return cls(
            id=profile.id,
            name=profile.name,
            email=profile.email,
            bio=profile.bio,
            last_login=profile.last_login,
            security_score=profile.security_score,
        )


class AuthResponse(BaseModel):
    """Response for register and login: bearer token plus the user."""

    model_config = ConfigDict(frozen=True)

    token: str
    user: UserResponse


class SecurityReportResponse(BaseModel):
    """Response for GET /api/user/security/{email}."""

    model_config = ConfigDict(frozen=True)

    score: int
    recommendations: list[str]
    vulnerabilities: list[str]
    summary: str


class ErrorResponse(BaseModel):
    """Error envelope returned on 4xx/5xx responses.

    code is the machine-readable kind; message is for humans; error is
    optional operator detail. The browser client renders "message: error".
    """

    model_config = ConfigDict(frozen=True)

    message: str
    code: str
    error: Optional[str] = None


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    db: str
    uptime: str
