"""
Unit Tests for Security Module
Tests for: password hashing, password policy, JWT tokens, one-time codes
"""
import pytest
from datetime import timedelta
from jose import jwt

from sims.core.config import settings
from sims.core.exceptions import InvalidTokenError
from sims.core.security import (
    verify_password,
    get_password_hash,
    password_policy_error,
    create_access_token,
    create_refresh_token,
    decode_token,
    generate_auth_code,
    hash_secret,
    secrets_match,
)


class TestPasswordHashing:
    """Test password hashing functions"""

    def test_hash_password_returns_different_value(self):
        """Test that hashing returns a different value than input"""
        hashed = get_password_hash("testpassword123")

        assert hashed != "testpassword123"
        assert len(hashed) > 0

    def test_hash_password_different_each_time(self):
        """Test that hashing same password returns different hashes"""
        assert get_password_hash("testpassword123") != get_password_hash("testpassword123")

    def test_verify_password_correct(self):
        """Test verifying correct password"""
        hashed = get_password_hash("testpassword123")

        assert verify_password("testpassword123", hashed) is True

    def test_verify_password_incorrect(self):
        """Test verifying incorrect password"""
        hashed = get_password_hash("testpassword123")

        assert verify_password("wrongpassword", hashed) is False

    def test_long_password_truncated_consistently(self):
        """Test passwords past bcrypt's 72 byte limit still verify"""
        password = "x" * 100
        hashed = get_password_hash(password)

        assert verify_password(password, hashed) is True


class TestPasswordPolicy:
    """Test reset-password complexity rules"""

    @pytest.mark.parametrize("password,message", [
        ("Ab1", "at least 8 characters"),
        ("ABCDEFG1", "lowercase"),
        ("abcdefg1", "uppercase"),
        ("Abcdefgh", "number"),
    ])
    def test_rejects_weak_passwords(self, password, message):
        """Test each rule reports its own violation"""
        error = password_policy_error(password)

        assert error is not None
        assert message in error

    def test_accepts_strong_password(self):
        """Test a password meeting every rule"""
        assert password_policy_error("Str0ngPassword") is None


class TestJWTTokens:
    """Test access/refresh token creation and decoding"""

    def test_access_token_round_trip(self):
        """Test decoding an access token returns its claims"""
        token = create_access_token({"sub": "user-1", "sid": "session-1"})

        payload = decode_token(token, expected_type="access")

        assert payload["sub"] == "user-1"
        assert payload["sid"] == "session-1"
        assert payload["type"] == "access"

    def test_refresh_tokens_are_unique(self):
        """Test refresh tokens for the same claims differ (jti)"""
        claims = {"sub": "user-1", "sid": "session-1"}

        assert create_refresh_token(claims) != create_refresh_token(claims)

    def test_wrong_token_type_rejected(self):
        """Test a refresh token cannot be used as an access token"""
        token = create_refresh_token({"sub": "user-1", "sid": "session-1"})

        with pytest.raises(InvalidTokenError):
            decode_token(token, expected_type="access")

    def test_expired_token_rejected(self):
        """Test an expired token raises InvalidTokenError"""
        token = create_access_token({"sub": "user-1"}, expires_delta=timedelta(seconds=-1))

        with pytest.raises(InvalidTokenError) as exc_info:
            decode_token(token)

        assert "expired" in exc_info.value.message

    def test_token_signed_with_other_key_rejected(self):
        """Test tampered tokens are rejected"""
        token = jwt.encode({"sub": "user-1", "type": "access"}, "not-the-key", algorithm=settings.JWT_ALGORITHM)

        with pytest.raises(InvalidTokenError):
            decode_token(token)


class TestSecrets:
    """Test one-time codes and stored digests"""

    def test_auth_codes_are_random(self):
        """Test consecutive codes differ"""
        assert generate_auth_code() != generate_auth_code()

    def test_secret_matches_its_digest(self):
        """Test a code verifies against its own hash only"""
        code = generate_auth_code()
        digest = hash_secret(code)

        assert secrets_match(code, digest) is True
        assert secrets_match(generate_auth_code(), digest) is False
        assert code not in digest
