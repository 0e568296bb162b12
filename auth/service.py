"""
auth/service.py -- Credential verification, lockout, registration and password change.

AuthService is the single entry point for every operation that reads or
writes a credential. Routes call it; it calls AccountStore and TokenSigner.

Login state machine (per account, derived from locked_until vs. now):

    Unlocked --wrong password (count < max)--------> Unlocked (count + 1)
    Unlocked --wrong password (count reaches max)--> Locked (until now + lockout)
    Locked   --any attempt before expiry-----------> Locked (no bcrypt, no count change)
    Locked   --wrong password after expiry---------> Unlocked (count = 1)
    any      --correct password, active account----> Unlocked (count = 0, lock cleared)

A correct password on a non-active account is reported as AccountInactive
and leaves the counters exactly as they were.

Store failures are logged with full detail here and re-raised as
InternalError, whose message carries nothing from the underlying exception.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import (
    AccountInactive,
    AccountLocked,
    DuplicateIdentity,
    IncorrectCurrentPassword,
    InternalError,
    InvalidCredentials,
    MissingFields,
    PasswordTooLong,
    PasswordTooShort,
)
from auth.models import Account, AccountStatus, Role
from auth.store import AccountStore
from auth.tokens import (
    BCRYPT_MAX_BYTES,
    TokenSigner,
    burn_dummy_verification,
    hash_password,
    verify_password,
)
from core.clock import Clock, utc_now
from core.config import Settings

logger = logging.getLogger("cybersecure.auth")

_USER_ID_RETRIES = 3


@dataclass
class LoginResult:
    account: Account
    token: str


@dataclass
class Registration:
    """Input for account creation (self-registration or admin creation)."""

    username: str | None
    email: str | None
    password: str | None
    first_name: str | None
    last_name: str | None
    role: Role | None = None
    department_id: str | None = None
    status: AccountStatus = AccountStatus.active


def _missing(**values: str | None) -> list[str]:
    return [name for name, value in values.items() if value is None or not str(value).strip()]


class AuthService:
    """Authentication and account-protection operations.

    Usage:
        service = AuthService(store, signer)
        result = service.login("alice", "P@ssw0rd!")
        result.token, result.account.last_login
    """

    def __init__(
        self,
        store: AccountStore,
        signer: TokenSigner,
        *,
        max_attempts: int = 5,
        lockout: timedelta = timedelta(hours=2),
        min_password_length: int = 6,
        bcrypt_rounds: int | None = None,
        default_role: Role = Role.analyst,
        default_department_id: str = "DEPT001",
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.signer = signer
        self.max_attempts = max_attempts
        self.lockout = lockout
        self.min_password_length = min_password_length
        self.bcrypt_rounds = bcrypt_rounds
        self.default_role = Role(default_role)
        self.default_department_id = default_department_id
        self.clock = clock

    @classmethod
    def from_settings(
        cls, store: AccountStore, signer: TokenSigner, settings: Settings, clock: Clock = utc_now
    ) -> AuthService:
        return cls(
            store,
            signer,
            max_attempts=settings.max_login_attempts,
            lockout=timedelta(seconds=settings.lockout_seconds),
            min_password_length=settings.min_password_length,
            bcrypt_rounds=settings.bcrypt_rounds,
            default_role=Role(settings.default_role),
            default_department_id=settings.default_department_id,
            clock=clock,
        )

    @contextmanager
    def _store_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            logger.exception("Account store failure during %s", operation)
            raise InternalError() from exc

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, identifier: str | None, password: str | None) -> LoginResult:
        """Verify credentials, maintain lockout counters, and issue a token.

        Raises MissingFields, InvalidCredentials, AccountLocked,
        AccountInactive or InternalError.
        """
        if _missing(username=identifier, password=password):
            raise MissingFields("Please provide username and password.")

        with self._store_errors("login"):
            account = self.store.find_by_identifier(identifier)
            if account is None:
                burn_dummy_verification(password)
                logger.info("Failed login for unknown identifier %r", identifier)
                raise InvalidCredentials()

            now = self.clock()
            if account.is_locked(now):
                # Remaining duration is logged here only; the response stays generic.
                logger.warning(
                    "Login refused for locked account id=%s (locked until %s)",
                    account.id,
                    account.locked_until.isoformat(),
                )
                raise AccountLocked()

            if not verify_password(password, account.hashed_password):
                updated = self.store.record_failed_login(account.id, now, self.max_attempts, self.lockout)
                if updated is not None:
                    logger.info("Failed login for account id=%s (attempt %d)", account.id, updated.failed_attempts)
                    if updated.is_locked(now):
                        logger.warning("Account id=%s locked until %s", account.id, updated.locked_until.isoformat())
                raise InvalidCredentials()

            if not account.is_active:
                logger.info("Login refused for %s account id=%s", account.status.value, account.id)
                raise AccountInactive()

            self.store.record_successful_login(account.id, now)
            refreshed = self.store.get_by_id(account.id)

        if refreshed is None:
            logger.error("Account id=%s vanished during login", account.id)
            raise InternalError()
        logger.info("Successful login for account id=%s", account.id)
        return LoginResult(account=refreshed, token=self.signer.sign(refreshed.id))

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, data: Registration) -> LoginResult:
        """Create an active account and issue a token for it."""
        account = self.create_account(data)
        return LoginResult(account=account, token=self.signer.sign(account.id))

    def create_account(self, data: Registration) -> Account:
        """Validate, hash, and persist a new account.

        Raises MissingFields, PasswordTooShort, PasswordTooLong, DuplicateIdentity
        or InternalError.
        """
        missing = _missing(
            username=data.username,
            email=data.email,
            password=data.password,
            first_name=data.first_name,
            last_name=data.last_name,
        )
        if missing:
            raise MissingFields(f"Please provide all required fields: {', '.join(missing)}.")
        self._check_password_length(data.password)

        username = data.username.strip()
        email = data.email.strip().lower()

        with self._store_errors("registration"):
            if self.store.exists_identity(username, email):
                raise DuplicateIdentity()

            hashed = hash_password(data.password, self.bcrypt_rounds)
            for _ in range(_USER_ID_RETRIES):
                candidate = Account(
                    user_id=self.store.next_user_id(),
                    username=username,
                    email=email,
                    hashed_password=hashed,
                    first_name=data.first_name.strip(),
                    last_name=data.last_name.strip(),
                    role=Role(data.role or self.default_role),
                    department_id=data.department_id or self.default_department_id,
                    status=AccountStatus(data.status),
                )
                try:
                    account_id = self.store.create_account(candidate)
                    break
                except IntegrityError as exc:
                    # Either a concurrent registration took our username/email,
                    # or it took the user_id we computed. Only the latter is retried.
                    if self.store.exists_identity(username, email):
                        raise DuplicateIdentity() from exc
                    logger.info("user_id %s taken concurrently, retrying", candidate.user_id)
            else:
                logger.error("Could not allocate a user_id after %d attempts", _USER_ID_RETRIES)
                raise InternalError()

            account = self.store.get_by_id(account_id)

        if account is None:
            raise InternalError()
        logger.info("Created account id=%s user_id=%s role=%s", account.id, account.user_id, account.role.value)
        return account

    # ------------------------------------------------------------------
    # Password change
    # ------------------------------------------------------------------

    def change_password(self, account: Account, current_password: str | None, new_password: str | None) -> None:
        """Replace the caller's credential after re-verifying the current one.

        Only reachable with a valid bearer token, so lockout counters are
        neither consulted nor modified here.
        """
        if _missing(currentPassword=current_password, newPassword=new_password):
            raise MissingFields("Please provide current password and new password.")

        with self._store_errors("password change"):
            stored = self.store.get_by_id(account.id)
            if stored is None:
                raise InvalidCredentials()
            if not verify_password(current_password, stored.hashed_password):
                logger.info("Password change rejected for account id=%s: wrong current password", account.id)
                raise IncorrectCurrentPassword()
            self._check_password_length(new_password)
            self.store.set_password_hash(account.id, hash_password(new_password, self.bcrypt_rounds))
        logger.info("Password changed for account id=%s", account.id)

    # ------------------------------------------------------------------
    # Logout / current account
    # ------------------------------------------------------------------

    def logout(self, account: Account) -> None:
        """Acknowledge a logout. Tokens are stateless, so nothing is stored or revoked."""
        logger.info("Logout acknowledged for account id=%s", account.id)

    def current_account(self, account_id: int) -> Account | None:
        """Return the active account a verified token points at, else None."""
        with self._store_errors("token lookup"):
            account = self.store.get_by_id(account_id)
        if account is None or not account.is_active:
            return None
        return account

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def unlock(self, account_id: int) -> bool:
        with self._store_errors("unlock"):
            cleared = self.store.clear_lockout(account_id)
        if cleared:
            logger.info("Lockout cleared for account id=%s", account_id)
        return cleared

    def _check_password_length(self, password: str) -> None:
        if len(password) < self.min_password_length:
            raise PasswordTooShort(f"Password must be at least {self.min_password_length} characters.")
        if len(password.encode("utf-8")) > BCRYPT_MAX_BYTES:
            raise PasswordTooLong(f"Password must be at most {BCRYPT_MAX_BYTES} bytes.")

