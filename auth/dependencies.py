"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Only one auth method exists: an Authorization: Bearer <token> header carrying
a token issued by AuthService.login() or register(). There are no cookies and
no server-side sessions.

get_current_account() verifies the token, loads the account, and raises HTTP
401 if anything is wrong. require_roles(...) builds a dependency that also
checks the account's role and raises HTTP 403 on mismatch.

Layer rule: no imports from api/. This module may import from fastapi
because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import Depends, HTTPException, Request

from auth.models import Account, Role
from auth.service import AuthService
from auth.tokens import TokenExpired, TokenInvalid

logger = logging.getLogger("cybersecure.auth")


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail={"code": code, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_account(request: Request) -> Account:
    """Require a valid bearer token for an active account.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(account: Account = Depends(get_current_account)): ...
    """
    token = _bearer_token(request)
    if token is None:
        raise _unauthorized("unauthorized", "Not authorized, no token.")

    service: AuthService = request.app.state.auth_service
    try:
        account_id = service.signer.verify(token)
    except TokenExpired:
        raise _unauthorized("token_expired", "Token has expired.") from None
    except TokenInvalid:
        raise _unauthorized("token_invalid", "Not authorized, token failed.") from None

    account = service.current_account(account_id)
    if account is None:
        logger.info("Token for missing or non-active account id=%s rejected", account_id)
        raise _unauthorized("unauthorized", "Not authorized, account unavailable.")
    return account


def require_roles(*roles: Role) -> Callable[[Account], Account]:
    """Build a dependency that admits only accounts holding one of the given roles.

    Use as a FastAPI dependency:
        @router.get("/admin-only")
        def route(account: Account = Depends(require_roles(Role.admin))): ...
    """
    allowed = frozenset(Role(r) for r in roles)

    def dependency(account: Account = Depends(get_current_account)) -> Account:
        if account.role not in allowed:
            raise HTTPException(
                status_code=403,
                detail={
                    "code": "forbidden",
                    "message": f"User role {account.role.value} is not authorized to access this route.",
                },
            )
        return account

    return dependency


require_admin = require_roles(Role.admin)
