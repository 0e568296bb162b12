"""
auth/errors.py -- Failure taxonomy for the authentication core.

Every error carries a machine-readable code, the HTTP status the API layer
should answer with, and a caller-safe message. api/main.py installs one
exception handler for AuthError that turns any of these into the standard
error envelope, so routes can simply let them propagate.

Messages are deliberately generic:
  - InvalidCredentials is raised for both unknown identifiers and wrong
    passwords, with identical text, so callers cannot enumerate accounts.
  - AccountLocked does not say when the lock ends.
  - InternalError never includes the underlying exception text.
"""

from __future__ import annotations


class AuthError(Exception):
    code = "auth_error"
    status_code = 400
    message = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class MissingFields(AuthError):
    code = "missing_fields"
    status_code = 400
    message = "Required fields are missing."


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    status_code = 401
    message = "Invalid credentials."


class IncorrectCurrentPassword(InvalidCredentials):
    """Wrong current password on change-password. The caller is already authenticated, hence 400."""

    status_code = 400
    message = "Current password is incorrect."


class AccountLocked(AuthError):
    code = "account_locked"
    status_code = 423
    message = "Account locked due to too many failed login attempts. Try again later."


class AccountInactive(AuthError):
    code = "account_inactive"
    status_code = 401
    message = "Account is not active. Please contact administrator."


class DuplicateIdentity(AuthError):
    code = "duplicate_identity"
    status_code = 400
    message = "User with this email or username already exists."


class PasswordTooShort(AuthError):
    code = "password_too_short"
    status_code = 400
    message = "Password is too short."


class InternalError(AuthError):
    code = "internal_error"
    status_code = 500
    message = "An unexpected error occurred."


class PasswordTooLong(AuthError):
    """bcrypt ignores everything past 72 bytes, so longer passwords are refused outright."""

    code = "password_too_long"
    status_code = 400
    message = "Password must be at most 72 bytes."
