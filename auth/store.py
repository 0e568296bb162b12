"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper.
AccountStore is the repository; _row_to_account is the mapper.
Route, service and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  username, email and user_id each carry a UNIQUE constraint. Email is
  lower-cased before every write and every lookup, so the constraint is
  effectively case-insensitive without relying on a collation.

Concurrency:
  record_failed_login() is a single conditional UPDATE. The counter increment,
  the lock decision and the expired-lock reset are all computed by the
  database from the row's current values, so two concurrent failures cannot
  both read the same count and write back the same increment.

Timestamps are stored as naive UTC (SQLite has no timezone type) and returned
as timezone-aware UTC by the mapper.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    and_,
    case,
    cast,
    create_engine,
    event,
    func,
    literal,
    null,
    or_,
    select,
)
from sqlalchemy.engine import Engine

from auth.models import Account, AccountStatus, Role
from core.clock import as_utc, utc_now
from core.config import get_settings

logger = logging.getLogger("cybersecure.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(20), nullable=False, unique=True),  # "U001"
    Column("username", String(50), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),  # always lower-case
    Column("hashed_password", Text, nullable=False),
    Column("first_name", String(50), nullable=False),
    Column("last_name", String(50), nullable=False),
    Column("role", String(20), nullable=False, server_default="analyst"),
    Column("department_id", String(20), nullable=False, server_default="DEPT001"),
    Column("status", String(20), nullable=False, server_default="active"),
    Column("failed_attempts", Integer, nullable=False, server_default="0"),
    Column("locked_until", DateTime),
    Column("last_login", DateTime),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
)

# Columns callers may change through update_account(). Credential and
# lockout columns have dedicated methods and are deliberately absent.
_UPDATABLE_FIELDS = frozenset({"first_name", "last_name", "email", "role", "department_id", "status"})


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. In-memory databases silently keep their
    "memory" journal mode.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_db(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account records.

    Usage:
        store = AccountStore("sqlite:///:memory:")
        account_id = store.create_account(Account(username="alice", ...))
        account = store.find_by_identifier("alice@example.com")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_account(self, account: Account) -> int:
        """Insert a new account and return its internal ID.

        Raises sqlalchemy.exc.IntegrityError if username, email or user_id is
        already taken. Callers translate that into DuplicateIdentity.
        """
        now = _to_db(utc_now())
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.insert().values(
                    user_id=account.user_id,
                    username=account.username,
                    email=account.email.lower(),
                    hashed_password=account.hashed_password,
                    first_name=account.first_name,
                    last_name=account.last_name,
                    role=Role(account.role).value,
                    department_id=account.department_id,
                    status=AccountStatus(account.status).value,
                    failed_attempts=0,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def next_user_id(self) -> str:
        """Return the next external user id: "U" + (highest numeric suffix + 1), zero-padded to 3."""
        with self.engine.connect() as conn:
            highest = conn.execute(select(func.max(cast(func.substr(_accounts.c.user_id, 2), Integer)))).scalar()
        return f"U{(highest or 0) + 1:03d}"

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_by_id(self, account_id: int) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_username(self, username: str) -> Account | None:
        """Look up an account by exact username (case-sensitive)."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.username == username)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_email(self, email: str) -> Account | None:
        """Look up an account by email (case-insensitive)."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == email.lower())).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_identifier(self, identifier: str) -> Account | None:
        """Resolve a login identifier that may be either a username or an email.

        If the identifier matches one account's username and a different
        account's email, the username match wins.
        """
        with self.engine.connect() as conn:
            rows = conn.execute(
                _accounts.select().where(
                    or_(_accounts.c.username == identifier, _accounts.c.email == identifier.lower())
                )
            ).fetchall()
        if not rows:
            return None
        for row in rows:
            if row.username == identifier:
                return _row_to_account(row)
        return _row_to_account(rows[0])

    def exists_identity(self, username: str, email: str) -> bool:
        """Return True if the username or the (case-folded) email is already taken.

        Both values are also checked against the other column, since
        find_by_identifier() accepts either one: a new username equal to an
        existing email (or the reverse) would shadow that account's login.
        """
        email = email.lower()
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_accounts.c.id)
                .where(
                    or_(
                        _accounts.c.username == username,
                        _accounts.c.username == email,
                        _accounts.c.email == email,
                        _accounts.c.email == username.lower(),
                    )
                )
                .limit(1)
            ).fetchone()
        return row is not None

    def identifier_taken(self, identifier: str, exclude_id: int | None = None) -> bool:
        """Return True if another account already answers to identifier as username or email.

        The lower-cased form is checked against usernames too, since that is
        how the value would be stored if it became an email.
        """
        folded = identifier.lower()
        stmt = select(_accounts.c.id).where(
            or_(
                _accounts.c.username == identifier,
                _accounts.c.username == folded,
                _accounts.c.email == folded,
            )
        )
        if exclude_id is not None:
            stmt = stmt.where(_accounts.c.id != exclude_id)
        with self.engine.connect() as conn:
            return conn.execute(stmt.limit(1)).fetchone() is not None

    def list_accounts(
        self,
        role: str | None = None,
        status: str | None = None,
        department_id: str | None = None,
        search: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[Account], int]:
        """Return one page of accounts (newest first) and the total match count."""
        conditions = []
        if role:
            conditions.append(_accounts.c.role == role)
        if status:
            conditions.append(_accounts.c.status == status)
        if department_id:
            conditions.append(_accounts.c.department_id == department_id)
        if search:
            pattern = f"%{search.lower()}%"
            conditions.append(
                or_(
                    func.lower(_accounts.c.first_name).like(pattern),
                    func.lower(_accounts.c.last_name).like(pattern),
                    func.lower(_accounts.c.username).like(pattern),
                    _accounts.c.email.like(pattern),
                )
            )
        where = and_(*conditions) if conditions else None

        page = _accounts.select().order_by(_accounts.c.created_at.desc(), _accounts.c.id.desc())
        total_q = select(func.count()).select_from(_accounts)
        if where is not None:
            page = page.where(where)
            total_q = total_q.where(where)

        with self.engine.connect() as conn:
            rows = conn.execute(page.limit(limit).offset(offset)).fetchall()
            total = conn.execute(total_q).scalar() or 0
        return [_row_to_account(r) for r in rows], total

    def count_by_status(self) -> dict[str, int]:
        """Return {status: count} with every status present (zero-filled)."""
        counts = {s.value: 0 for s in AccountStatus}
        with self.engine.connect() as conn:
            rows = conn.execute(select(_accounts.c.status, func.count()).group_by(_accounts.c.status)).fetchall()
        for status, count in rows:
            counts[status] = count
        return counts

    def count_by_role(self) -> dict[str, int]:
        """Return {role: count} with every role present (zero-filled)."""
        counts = {r.value: 0 for r in Role}
        with self.engine.connect() as conn:
            rows = conn.execute(select(_accounts.c.role, func.count()).group_by(_accounts.c.role)).fetchall()
        for role, count in rows:
            counts[role] = count
        return counts

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update_account(self, account_id: int, **fields) -> bool:
        """Update profile, role or status fields on an existing account.

        Accepted fields: first_name, last_name, email, role, department_id, status.
        Unknown keys raise ValueError rather than being silently dropped.

        Returns True if a row was updated, False if account_id was not found.
        Raises sqlalchemy.exc.IntegrityError if a new email collides.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown account fields: {unknown!r}")
        if "email" in fields:
            fields["email"] = fields["email"].lower()
        for key, enum_type in (("role", Role), ("status", AccountStatus)):
            if key in fields:
                fields[key] = enum_type(fields[key]).value
        fields["updated_at"] = _to_db(utc_now())
        with self.engine.connect() as conn:
            result = conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def set_password_hash(self, account_id: int, hashed_password: str) -> bool:
        """Overwrite the stored credential. Lockout columns are not touched."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(hashed_password=hashed_password, updated_at=_to_db(utc_now()))
            )
            conn.commit()
        return result.rowcount > 0

    def record_failed_login(
        self,
        account_id: int,
        now: datetime,
        max_attempts: int,
        lockout: timedelta,
    ) -> Account | None:
        """Atomically register one wrong-password event and return the updated account.

        In one UPDATE, evaluated against the row's current values:
          - lock expired (locked_until <= now): clear the lock, counter = 1
          - otherwise: counter + 1, and lock until now + lockout once the new
            count reaches max_attempts

        The WHERE clause skips rows that are locked right now, so a request
        that raced past the service's lock check cannot extend or re-count an
        active lock. Returns None in that case (or if the account is gone).
        """
        now_db = _to_db(now)
        lock_until_db = _to_db(now + lockout)
        locked_until = _accounts.c.locked_until
        expired = and_(locked_until.is_not(None), locked_until <= now_db)
        stmt = (
            _accounts.update()
            .where(_accounts.c.id == account_id)
            .where(or_(locked_until.is_(None), locked_until <= now_db))
            .values(
                failed_attempts=case((expired, 1), else_=_accounts.c.failed_attempts + 1),
                locked_until=case(
                    (expired, null()),
                    (_accounts.c.failed_attempts + 1 >= max_attempts, literal(lock_until_db, DateTime)),
                    else_=locked_until,
                ),
            )
        )
        with self.engine.connect() as conn:
            result = conn.execute(stmt)
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
            conn.commit()
        if result.rowcount == 0 or row is None:
            return None
        return _row_to_account(row)

    def record_successful_login(self, account_id: int, now: datetime) -> None:
        """Reset the failure counter, clear any lock, and stamp last_login."""
        with self.engine.connect() as conn:
            conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(failed_attempts=0, locked_until=None, last_login=_to_db(now))
            )
            conn.commit()

    def clear_lockout(self, account_id: int) -> bool:
        """Administrative unlock: reset the counter and clear locked_until."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(failed_attempts=0, locked_until=None, updated_at=_to_db(utc_now()))
            )
            conn.commit()
        return result.rowcount > 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(select(literal(1))).scalar() == 1

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        user_id=row.user_id,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        first_name=row.first_name,
        last_name=row.last_name,
        role=Role(row.role),
        department_id=row.department_id,
        status=AccountStatus(row.status),
        failed_attempts=row.failed_attempts,
        locked_until=as_utc(row.locked_until),
        last_login=as_utc(row.last_login),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )
