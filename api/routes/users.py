"""
api/routes/users.py -- Account administration endpoints.

Routes:
  GET   /api/users               -- paginated list with filters (admin, analyst)
  GET   /api/users/stats         -- counts by status and role (admin)
  GET   /api/users/{id}          -- one account (self, or admin/analyst)
  POST  /api/users               -- create an account with any role/status (admin)
  PUT   /api/users/{id}          -- update profile; role/status admin-only (PATCH accepted too)
  POST  /api/users/{id}/unlock   -- clear failed-attempt counter and lock (admin)

Accounts are never deleted through the API.

Security:
  Password and lockout columns cannot be written here: UserUpdate has no
  slot for them and the store's update_account() whitelists its columns.
  [self-lockout] An admin cannot deactivate or demote their own account.
"""

from __future__ import annotations

import math

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.exc import IntegrityError

from api.models import (
    AccountEnvelope,
    AccountListResponse,
    AccountPage,
    AccountResponse,
    MessageResponse,
    Pagination,
    UserCreate,
    UserStats,
    UserStatsOverview,
    UserStatsResponse,
    UserUpdate,
)
from auth.dependencies import get_current_account, require_admin, require_roles
from auth.errors import DuplicateIdentity
from auth.models import Account, AccountStatus, Role
from auth.service import AuthService, Registration

# Auth policy:
# - GET   /api/users:              admin or analyst
# - GET   /api/users/stats:        admin
# - GET   /api/users/{id}:         any authenticated account; viewers only see themselves
# - POST  /api/users:              admin
# - PUT   /api/users/{id}:         self or admin; role/status admin-only (PATCH is an alias)
# - POST  /api/users/{id}/unlock:  admin
router = APIRouter(prefix="/users")

_not_found = {"code": "not_found", "message": "User not found."}


def _get_or_404(service: AuthService, account_id: int) -> Account:
    account = service.store.get_by_id(account_id)
    if account is None:
        raise HTTPException(status_code=404, detail=_not_found)
    return account


@router.get("", response_model=AccountListResponse)
def list_users(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    role: Role | None = None,
    status: AccountStatus | None = None,
    department_id: str | None = Query(default=None, max_length=20),
    search: str | None = Query(default=None, max_length=100),
    _account: Account = Depends(require_roles(Role.admin, Role.analyst)),
) -> AccountListResponse:
    """List accounts newest first, filtered by role, status, department, or free-text search."""
    service: AuthService = request.app.state.auth_service
    accounts, total = service.store.list_accounts(
        role=role.value if role else None,
        status=status.value if status else None,
        department_id=department_id,
        search=search,
        limit=limit,
        offset=(page - 1) * limit,
    )
    return AccountListResponse(
        data=AccountPage(
            users=[AccountResponse.from_account(a) for a in accounts],
            pagination=Pagination(
                current_page=page,
                total_pages=math.ceil(total / limit),
                total_users=total,
                per_page=limit,
            ),
        )
    )


@router.get("/stats", response_model=UserStatsResponse)
def user_stats(request: Request, _admin: Account = Depends(require_admin)) -> UserStatsResponse:
    """Return account counts by status and by role."""
    service: AuthService = request.app.state.auth_service
    by_status = service.store.count_by_status()
    return UserStatsResponse(
        data=UserStats(
            overview=UserStatsOverview(
                total_users=sum(by_status.values()),
                active_users=by_status[AccountStatus.active.value],
                inactive_users=by_status[AccountStatus.inactive.value],
                suspended_users=by_status[AccountStatus.suspended.value],
            ),
            by_role=service.store.count_by_role(),
        )
    )


@router.get("/{account_id}", response_model=AccountEnvelope)
def get_user(
    request: Request,
    account_id: int,
    current: Account = Depends(get_current_account),
) -> AccountEnvelope:
    """Return one account. Viewers may only read their own record."""
    if current.role is Role.viewer and current.id != account_id:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Not authorized to view this user."},
        )
    service: AuthService = request.app.state.auth_service
    return AccountEnvelope(data=AccountResponse.from_account(_get_or_404(service, account_id)))


@router.post("", response_model=AccountEnvelope, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    _admin: Account = Depends(require_admin),
) -> AccountEnvelope:
    """Create an account on someone's behalf. Admin only."""
    service: AuthService = request.app.state.auth_service
    account = service.create_account(
        Registration(
            username=body.username,
            email=body.email,
            password=body.password,
            first_name=body.first_name,
            last_name=body.last_name,
            role=body.role,
            department_id=body.department_id,
            status=body.status,
        )
    )
    return AccountEnvelope(message="User created successfully", data=AccountResponse.from_account(account))


@router.put("/{account_id}", response_model=AccountEnvelope)
@router.patch("/{account_id}", response_model=AccountEnvelope)
def update_user(
    request: Request,
    account_id: int,
    body: UserUpdate,
    current: Account = Depends(get_current_account),
) -> AccountEnvelope:
    """Update an account's profile. Only admins may change role or status, or edit other accounts.

    Fields left out of the body are unchanged, so PUT and PATCH behave the same.
    """
    is_admin = current.role is Role.admin
    if not is_admin and current.id != account_id:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Not authorized to update this user."},
        )

    updates = body.model_dump(exclude_none=True)
    if not is_admin and ({"role", "status"} & updates.keys()):
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Only administrators can change role or status."},
        )
    if current.id == account_id and (
        updates.get("status", AccountStatus.active) is not AccountStatus.active
        or updates.get("role", current.role) is not current.role
    ):
        raise HTTPException(
            status_code=400,
            detail={"code": "self_lockout", "message": "You cannot deactivate or demote your own account."},
        )
    if not updates:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )

    service: AuthService = request.app.state.auth_service
    _get_or_404(service, account_id)
    if "email" in updates and service.store.identifier_taken(updates["email"], exclude_id=account_id):
        raise DuplicateIdentity()
    try:
        service.store.update_account(account_id, **updates)
    except IntegrityError as exc:
        raise DuplicateIdentity() from exc
    return AccountEnvelope(
        message="User updated successfully",
        data=AccountResponse.from_account(_get_or_404(service, account_id)),
    )


@router.post("/{account_id}/unlock", response_model=MessageResponse)
def unlock_user(
    request: Request,
    account_id: int,
    _admin: Account = Depends(require_admin),
) -> MessageResponse:
    """Clear the failed-attempt counter and any active lock. Admin only."""
    service: AuthService = request.app.state.auth_service
    if not service.unlock(account_id):
        raise HTTPException(status_code=404, detail=_not_found)
    return MessageResponse(message="User unlocked successfully")
