"""
tests/test_cli.py -- Tests for the main.py account maintenance CLI.

Covers:
  - create-user prompts twice and creates the account with the given role
  - mismatched confirmation and duplicate identities exit 1
  - unlock clears an active lock by username or email
  - unknown identifiers exit 1
"""

from __future__ import annotations

from datetime import timedelta

import pytest

import main as cli
from auth.models import AccountStatus, Role
from auth.store import AccountStore
from core.clock import utc_now


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'cli.db'}"


@pytest.fixture
def passwords(monkeypatch):
    """Feed getpass from a list; each test sets the answers it needs."""
    answers: list[str] = []
    monkeypatch.setattr("getpass.getpass", lambda prompt="": answers.pop(0))
    return answers


def _create(db_url: str, username: str, *extra: str) -> int:
    return cli.main(
        [
            "--db",
            db_url,
            "create-user",
            "--username",
            username,
            "--email",
            f"{username}@example.com",
            "--first-name",
            "Cli",
            "--last-name",
            "User",
            *extra,
        ]
    )


def test_create_user(db_url, passwords, capsys):
    passwords.extend(["s3cret-pw", "s3cret-pw"])
    assert _create(db_url, "root", "--role", "admin", "--department", "DEPT002") == 0
    assert "Created U001 root" in capsys.readouterr().out

    store = AccountStore(db_url)
    try:
        account = store.get_by_username("root")
        assert account.role is Role.admin
        assert account.status is AccountStatus.active
        assert account.department_id == "DEPT002"
        assert account.hashed_password != "s3cret-pw"
    finally:
        store.close()


def test_create_user_password_mismatch(db_url, passwords, capsys):
    passwords.extend(["s3cret-pw", "different"])
    assert _create(db_url, "mismatch") == 1
    assert "do not match" in capsys.readouterr().out


def test_create_user_duplicate(db_url, passwords, capsys):
    passwords.extend(["s3cret-pw", "s3cret-pw", "s3cret-pw", "s3cret-pw"])
    assert _create(db_url, "twice") == 0
    assert _create(db_url, "twice") == 1
    assert "already exists" in capsys.readouterr().out


def test_create_user_short_password(db_url, passwords, capsys):
    passwords.extend(["123", "123"])
    assert _create(db_url, "shorty") == 1
    assert "at least" in capsys.readouterr().out


def test_create_user_rejects_unknown_role(db_url, passwords):
    with pytest.raises(SystemExit) as exc:
        _create(db_url, "bad", "--role", "superuser")
    assert exc.value.code == 2


@pytest.mark.parametrize("identifier", ["locked", "locked@example.com"])
def test_unlock(db_url, passwords, capsys, identifier):
    passwords.extend(["s3cret-pw", "s3cret-pw"])
    assert _create(db_url, "locked") == 0

    store = AccountStore(db_url)
    try:
        account_id = store.get_by_username("locked").id
        for _ in range(5):
            store.record_failed_login(account_id, utc_now(), 5, timedelta(hours=2))
        assert store.get_by_id(account_id).is_locked(utc_now())

        assert cli.main(["--db", db_url, "unlock", identifier]) == 0
        assert "Unlocked locked" in capsys.readouterr().out

        account = store.get_by_id(account_id)
        assert account.failed_attempts == 0
        assert account.locked_until is None
    finally:
        store.close()


def test_unlock_unknown(db_url, capsys):
    assert cli.main(["--db", db_url, "unlock", "ghost"]) == 1
    assert "No account matches" in capsys.readouterr().out
