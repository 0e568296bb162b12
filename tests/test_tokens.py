"""
tests/test_tokens.py -- Unit tests for auth/tokens.py.

Covers:
  - bcrypt hashing: salted, verifies, cost factor only matters when hashing
  - nothing past the 72-byte bcrypt limit is silently ignored
  - malformed stored hash is a mismatch, not an exception
  - TokenSigner: round trip, expired, tampered, wrong key, bad sub
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import bcrypt
import pytest
from jose import jwt

from auth.tokens import (
    TokenExpired,
    TokenInvalid,
    TokenSigner,
    burn_dummy_verification,
    hash_password,
    verify_password,
)
from conftest import TEST_SECRET


class TestPasswordHashing:
    def test_hash_verifies(self):
        hashed = hash_password("P@ssw0rd!", rounds=4)
        assert verify_password("P@ssw0rd!", hashed)
        assert not verify_password("p@ssw0rd!", hashed)

    def test_hash_is_salted(self):
        assert hash_password("same", rounds=4) != hash_password("same", rounds=4)

    def test_rounds_are_embedded_in_hash(self):
        assert hash_password("pw", rounds=4).startswith("$2b$04$")
        assert hash_password("pw", rounds=5).startswith("$2b$05$")

    def test_hashes_with_different_costs_both_verify(self):
        """Raising the configured cost must not break older hashes."""
        old = hash_password("pw-123456", rounds=4)
        new = hash_password("pw-123456", rounds=6)
        assert verify_password("pw-123456", old)
        assert verify_password("pw-123456", new)

    def test_verifies_hash_made_by_bcrypt_directly(self):
        hashed = bcrypt.hashpw(b"legacy-pw", bcrypt.gensalt(rounds=4)).decode()
        assert verify_password("legacy-pw", hashed)

    def test_seventy_two_byte_password_is_exact(self):
        """Nothing past the bcrypt input limit may be ignored."""
        password = "A" * 72
        hashed = hash_password(password, rounds=4)
        assert verify_password(password, hashed)
        assert not verify_password(password + "x", hashed)
        assert not verify_password(password + password, hashed)

    def test_over_limit_password_cannot_be_hashed(self):
        with pytest.raises(ValueError):
            hash_password("A" * 73, rounds=4)

    def test_limit_counts_utf8_bytes(self):
        # 24 three-byte characters fill the 72 bytes exactly.
        password = "\u20ac" * 24
        hashed = hash_password(password, rounds=4)
        assert verify_password(password, hashed)
        assert not verify_password(password + "e", hashed)
        with pytest.raises(ValueError):
            hash_password(password + "e", rounds=4)

    def test_malformed_hash_is_a_mismatch(self):
        assert verify_password("anything", "not-a-bcrypt-hash") is False

    def test_dummy_verification_returns_nothing(self):
        assert burn_dummy_verification("whatever") is None


class TestTokenSigner:
    def test_round_trip(self):
        signer = TokenSigner(TEST_SECRET, expire_seconds=60)
        assert signer.verify(signer.sign(42)) == 42

    def test_claims(self):
        signer = TokenSigner(TEST_SECRET, expire_seconds=60)
        claims = jwt.decode(signer.sign(7), TEST_SECRET, algorithms=["HS256"])
        assert claims["sub"] == "7"
        assert claims["exp"] - claims["iat"] == 60

    def test_expired_token(self):
        signer = TokenSigner(TEST_SECRET, expire_seconds=60)
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        token = jwt.encode({"sub": "1", "iat": past, "exp": past + timedelta(minutes=1)}, TEST_SECRET, "HS256")
        with pytest.raises(TokenExpired):
            signer.verify(token)

    def test_wrong_key(self):
        token = TokenSigner("k" * 48, expire_seconds=60).sign(1)
        with pytest.raises(TokenInvalid):
            TokenSigner(TEST_SECRET, expire_seconds=60).verify(token)

    def test_tampered_token(self):
        signer = TokenSigner(TEST_SECRET, expire_seconds=60)
        header, payload, signature = signer.sign(1).split(".")
        tampered = ".".join([header, payload, signature[::-1]])
        with pytest.raises(TokenInvalid):
            signer.verify(tampered)

    def test_garbage(self):
        with pytest.raises(TokenInvalid):
            TokenSigner(TEST_SECRET, expire_seconds=60).verify("not.a.token")

    @pytest.mark.parametrize("claims", [{}, {"sub": "abc"}])
    def test_missing_or_non_numeric_sub(self, claims):
        exp = datetime.now(timezone.utc) + timedelta(minutes=5)
        token = jwt.encode({**claims, "exp": exp}, TEST_SECRET, "HS256")
        with pytest.raises(TokenInvalid):
            TokenSigner(TEST_SECRET, expire_seconds=60).verify(token)
