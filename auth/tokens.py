"""
auth/tokens.py -- Password hashing and bearer token signing.

Security design decisions:
  Passwords: bcrypt used directly (no passlib wrapper). The cost factor comes
       from Settings.bcrypt_rounds and is only applied when hashing. bcrypt
       embeds salt and rounds in the hash string and checkpw() reads them back,
       so raising the configured cost never breaks verification of older hashes.
       The _DUMMY_HASH constant lets the login path run one bcrypt check even
       when the identifier is unknown, so response time does not reveal whether
       an account exists.

  Tokens: python-jose with HS256. A token carries only the internal account id
       (sub), issued-at and expiry. TokenSigner.verify() distinguishes expired
       from otherwise invalid tokens; the dependency layer turns both into 401.
       There is no server-side session table, so a token cannot be revoked
       before its exp claim.

  SECRET_KEY: sourced from core.config.get_settings(), which validates length
       and refuses to start in production without one.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from core.config import get_settings

logger = logging.getLogger("cybersecure.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

BCRYPT_MAX_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int | None = None) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes of its input, so longer passwords
    are refused here instead of being silently truncated. AuthService rejects
    them earlier with PasswordTooLong.
    """
    encoded = plain.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES:
        raise ValueError(f"Password exceeds {BCRYPT_MAX_BYTES} bytes")
    salt = bcrypt.gensalt(rounds=rounds or _settings.bcrypt_rounds)
    return bcrypt.hashpw(encoded, salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash is treated as a mismatch, not an error. So is a
    plaintext over 72 bytes: no stored hash can have been made from it, and
    truncating would accept any suffix after byte 72.
    """
    encoded = plain.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES:
        burn_dummy_verification(plain)
        return False
    try:
        return bcrypt.checkpw(encoded, hashed.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


# Computed once at module load so the first unknown-identifier login is not
# measurably slower than later ones.
_DUMMY_HASH: str = hash_password("cybersecure_timing_dummy")


def burn_dummy_verification(plain: str) -> None:
    """Spend one bcrypt check against a throwaway hash (timing equalization)."""
    # Over-long input still pays for one check so it is not measurably faster.
    bcrypt.checkpw(plain.encode("utf-8")[:BCRYPT_MAX_BYTES], _DUMMY_HASH.encode("utf-8"))


# ---------------------------------------------------------------------------
# Bearer tokens
# ---------------------------------------------------------------------------


class TokenError(Exception):
    """Raised when a bearer token cannot be accepted."""


class TokenExpired(TokenError):
    pass


class TokenInvalid(TokenError):
    pass


class TokenSigner:
    """Sign and verify session tokens that bind an internal account id.

    Usage:
        signer = TokenSigner(secret_key, expire_seconds=3600)
        token = signer.sign(42)
        signer.verify(token)  # -> 42
    """

    def __init__(self, secret_key: str, expire_seconds: int, algorithm: str = _ALGORITHM) -> None:
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds
        self._algorithm = algorithm

    def sign(self, account_id: int) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(account_id),
            "iat": now,
            "exp": now + timedelta(seconds=self.expire_seconds),
        }
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: str) -> int:
        """Return the account id bound by the token.

        Raises TokenExpired when the exp claim has passed and TokenInvalid for
        anything else (bad signature, malformed token, missing or non-numeric sub).
        """
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except ExpiredSignatureError as exc:
            raise TokenExpired("Token has expired.") from exc
        except JWTError as exc:
            raise TokenInvalid("Invalid token.") from exc
        try:
            return int(payload["sub"])
        except (KeyError, TypeError, ValueError) as exc:
            raise TokenInvalid("Invalid token.") from exc


def get_token_signer() -> TokenSigner:
    """Build a signer from the application settings."""
    return TokenSigner(_settings.secret_key, _settings.token_expire_seconds)
