"""
auth/models.py -- Domain dataclasses and enums for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores and the
service do the work; the only behaviour here is lock-state derivation, which
must read the same everywhere it is asked.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    admin = "admin"
    analyst = "analyst"
    viewer = "viewer"


class AccountStatus(str, Enum):
    active = "active"
    inactive = "inactive"
    suspended = "suspended"


@dataclass
class Account:
    """A stored identity with credential, role, and status.

    id is the internal primary key and is what session tokens bind to.
    user_id is the external, human-facing identifier ("U001").

    hashed_password is a bcrypt hash and must never leave the auth package;
    api/models.py builds responses field by field and has no slot for it.

    Lock state is derived: the account is locked while locked_until is set
    and in the future. There is no stored boolean.
    """

    username: str
    email: str
    first_name: str
    last_name: str
    hashed_password: str
    user_id: str = ""
    role: Role = Role.analyst
    department_id: str = "DEPT001"
    status: AccountStatus = AccountStatus.active
    id: int | None = None
    failed_attempts: int = 0
    locked_until: datetime | None = None
    last_login: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_active(self) -> bool:
        return self.status is AccountStatus.active

    def is_locked(self, now: datetime) -> bool:
        return self.locked_until is not None and self.locked_until > now
