"""
API request and response models for CyberSecure REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Required-field checks are NOT done here: request fields are Optional so that
an absent field reaches AuthService, which answers with the 400
missing_fields error the clients expect. Format constraints on fields that
are present (length, email shape, department pattern) are enforced here and
surface as 422 validation_error.

No response model has a slot for the password hash or the lockout columns.
"""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import Account, AccountStatus, Role

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DEPARTMENT_PATTERN = r"^DEPT[0-9]{3,}$"
USERNAME_MIN_LENGTH = 3

# Only bounds request bodies. The 72-byte bcrypt limit is enforced by AuthService.
_PASSWORD_MAX = 128


def _check_email(value: Optional[str]) -> Optional[str]:
    if value and value.strip() and not EMAIL_PATTERN.match(value.strip()):
        raise ValueError("Please provide a valid email")
    return value


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login. username accepts a username or an email."""

    username: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=_PASSWORD_MAX)


class RegisterRequest(BaseModel):
    """Request body for POST /api/auth/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: Optional[str] = Field(default=None, max_length=50)
    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=_PASSWORD_MAX)
    first_name: Optional[str] = Field(default=None, max_length=50)
    last_name: Optional[str] = Field(default=None, max_length=50)
    role: Optional[Role] = None
    department_id: Optional[str] = Field(default=None, pattern=DEPARTMENT_PATTERN)

    @field_validator("username")
    @classmethod
    def username_length(cls, value: Optional[str]) -> Optional[str]:
        if value and len(value) < USERNAME_MIN_LENGTH:
            raise ValueError(f"Username must be at least {USERNAME_MIN_LENGTH} characters")
        return value

    @field_validator("email")
    @classmethod
    def email_format(cls, value: Optional[str]) -> Optional[str]:
        return _check_email(value)


class UserCreate(RegisterRequest):
    """Request body for POST /api/users (admin). Same as registration plus an initial status."""

    status: AccountStatus = AccountStatus.active


class UserUpdate(BaseModel):
    """Request body for PATCH /api/users/{id}.

    role and status are honoured only for admins; the route rejects them for
    anyone else. Password and lockout fields have no slot here at all.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    first_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    email: Optional[str] = Field(default=None, min_length=3, max_length=255)
    department_id: Optional[str] = Field(default=None, pattern=DEPARTMENT_PATTERN)
    role: Optional[Role] = None
    status: Optional[AccountStatus] = None

    @field_validator("email")
    @classmethod
    def email_format(cls, value: Optional[str]) -> Optional[str]:
        return _check_email(value)


class ChangePasswordRequest(BaseModel):
    """Request body for PUT /api/auth/change-password (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True)

    current_password: Optional[str] = Field(default=None, alias="currentPassword", max_length=_PASSWORD_MAX)
    new_password: Optional[str] = Field(default=None, alias="newPassword", max_length=_PASSWORD_MAX)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    """Public view of an account. Credential and lockout fields are never included."""

    model_config = ConfigDict(frozen=True)

    id: int
    user_id: str
    username: str
    email: str
    first_name: str
    last_name: str
    full_name: str
    role: Role
    department_id: str
    status: AccountStatus
    last_login: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        """Build the public view from a domain Account (Factory Method)."""
        return cls(
            id=account.id,
            user_id=account.user_id,
            username=account.username,
            email=account.email,
            first_name=account.first_name,
            last_name=account.last_name,
            full_name=account.full_name,
            role=account.role,
            department_id=account.department_id,
            status=account.status,
            last_login=account.last_login.isoformat() if account.last_login else None,
            created_at=account.created_at.isoformat() if account.created_at else None,
            updated_at=account.updated_at.isoformat() if account.updated_at else None,
        )


class AuthData(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: AccountResponse
    token: str


class AuthResponse(BaseModel):
    """Response for register and login."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str
    data: AuthData


class AccountEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: Optional[str] = None
    data: AccountResponse


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str


class Pagination(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_page: int
    total_pages: int
    total_users: int
    per_page: int


class AccountPage(BaseModel):
    model_config = ConfigDict(frozen=True)

    users: list[AccountResponse]
    pagination: Pagination


class AccountListResponse(BaseModel):
    """Response for GET /api/users."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    data: AccountPage


class UserStatsOverview(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_users: int
    active_users: int
    inactive_users: int
    suspended_users: int


class UserStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    overview: UserStatsOverview
    by_role: dict[str, int]


class UserStatsResponse(BaseModel):
    """Response for GET /api/users/stats."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    data: UserStats


class ErrorResponse(BaseModel):
    """Envelope returned on every 4xx/5xx response."""

    model_config = ConfigDict(frozen=True)

    success: bool = False
    code: str
    message: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str = "CyberSecure API is running!"
    status: str = "healthy"
    version: str
    timestamp: str
    components: dict[str, str] = Field(default_factory=dict)
