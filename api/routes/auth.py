"""
api/routes/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/auth/register         -- create an account; returns user + token (201)
  POST /api/auth/login            -- username-or-email + password; returns user + token
  GET  /api/auth/me               -- current account (requires bearer token)
  POST /api/auth/logout           -- acknowledge logout (requires bearer token)
  PUT  /api/auth/change-password  -- replace own password (requires bearer token)

Security:
  register and login are rate-limited per client IP (AUTH_RATE_LIMIT).
  Unknown identifier and wrong password produce the same 401 body.
  Cache-Control: no-store on every response that carries a token.
  Handlers that hash or verify passwords are plain `def` so bcrypt runs in
  the worker thread pool, not on the event loop.

Errors raised by AuthService (auth.errors.AuthError subclasses) propagate to
the handler in api/main.py, which renders the standard error envelope.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import AUTH_RATE_LIMIT, limiter
from api.models import (
    AccountEnvelope,
    AccountResponse,
    AuthData,
    AuthResponse,
    ChangePasswordRequest,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
)
from auth.dependencies import get_current_account
from auth.models import Account
from auth.service import AuthService, LoginResult, Registration

# Auth policy:
# - POST /api/auth/register:         public
# - POST /api/auth/login:            public
# - GET  /api/auth/me:               requires auth (get_current_account)
# - POST /api/auth/logout:           requires auth (get_current_account)
# - PUT  /api/auth/change-password:  requires auth (get_current_account)
router = APIRouter()


def _token_response(result: LoginResult, message: str, status_code: int) -> JSONResponse:
    body = AuthResponse(
        message=message,
        data=AuthData(user=AccountResponse.from_account(result.account), token=result.token),
    )
    resp = JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(AUTH_RATE_LIMIT)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an active account and return it with a session token."""
    service: AuthService = request.app.state.auth_service
    result = service.register(
        Registration(
            username=body.username,
            email=body.email,
            password=body.password,
            first_name=body.first_name,
            last_name=body.last_name,
            role=body.role,
            department_id=body.department_id,
        )
    )
    return _token_response(result, "User registered successfully", 201)


@limiter.limit(AUTH_RATE_LIMIT)
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with a username or email and a password.

    Failures: 400 missing_fields, 401 invalid_credentials, 401
    account_inactive, 423 account_locked. All lockout bookkeeping happens in
    AuthService.login().
    """
    service: AuthService = request.app.state.auth_service
    result = service.login(body.username, body.password)
    return _token_response(result, "Login successful", 200)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=AccountEnvelope)
async def me(account: Account = Depends(get_current_account)) -> AccountEnvelope:
    """Return the currently authenticated account."""
    return AccountEnvelope(data=AccountResponse.from_account(account))


@router.post("/auth/logout", response_model=MessageResponse)
async def logout(request: Request, account: Account = Depends(get_current_account)) -> MessageResponse:
    """Acknowledge a logout.

    Tokens are stateless: the client discards its token and nothing changes
    server-side. A copied token stays valid until it expires.
    """
    service: AuthService = request.app.state.auth_service
    service.logout(account)
    return MessageResponse(message="Logout successful")


@router.put("/auth/change-password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    account: Account = Depends(get_current_account),
) -> MessageResponse:
    """Replace the caller's password after re-checking the current one."""
    service: AuthService = request.app.state.auth_service
    service.change_password(account, body.current_password, body.new_password)
    return MessageResponse(message="Password changed successfully")
