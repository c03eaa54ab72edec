"""Unit tests for passwords, access tokens and webhook signatures"""

import pytest
from blink_backend.config import Settings
from blink_backend.domain.exceptions import AuthorizationError
from blink_backend.infrastructure.security import (
    codes_match,
    create_access_token,
    decode_access_token,
    generate_otp,
    hash_password,
    sign_webhook,
    verify_password,
    verify_webhook_signature,
)


def test_password_hash_roundtrip():
    """Test bcrypt hashes verify only the original password"""
    hashed = hash_password("correct-horse-battery")

    assert hashed != "correct-horse-battery"
    assert verify_password("correct-horse-battery", hashed)
    assert not verify_password("wrong", hashed)


def test_malformed_hash_does_not_verify():
    """Test a corrupt stored hash is a failed login, not a crash"""
    assert verify_password("anything", "not-a-bcrypt-hash") is False


def test_access_token_carries_user_id(settings):
    """Test the subject claim is the user id"""
    token = create_access_token(settings, "3f0c7d8e-0000-4000-8000-000000000001")

    assert decode_access_token(settings, token) == "3f0c7d8e-0000-4000-8000-000000000001"


def test_expired_token_rejected():
    """Test tokens past their expiry are refused"""
    settings = Settings(jwt_expires_minutes=-1)
    token = create_access_token(settings, "user-1")

    with pytest.raises(AuthorizationError, match="Invalid or expired token."):
        decode_access_token(settings, token)


def test_token_signed_with_other_secret_rejected(settings):
    """Test signature verification"""
    forged = create_access_token(Settings(jwt_secret="someone-else"), "user-1")

    with pytest.raises(AuthorizationError):
        decode_access_token(settings, forged)


def test_garbage_token_rejected(settings):
    """Test non-JWT input"""
    with pytest.raises(AuthorizationError):
        decode_access_token(settings, "not.a.token")


def test_generate_otp():
    """Test codes are numeric and of the requested length"""
    code = generate_otp(8)

    assert len(code) == 8
    assert code.isdigit()


def test_codes_match():
    """Test constant-time code comparison"""
    assert codes_match("123456", "123456")
    assert not codes_match("123456", "123457")


def test_webhook_signature():
    """Test HMAC-SHA256 over the raw body"""
    body = b'{"webhook_type":"TRANSACTIONS","webhook_code":"SYNC_UPDATES_AVAILABLE"}'
    signature = sign_webhook("secret", body)

    assert len(signature) == 64
    assert verify_webhook_signature("secret", body, signature)
    assert verify_webhook_signature("secret", body, signature.upper())
    assert not verify_webhook_signature("secret", body + b" ", signature)
    assert not verify_webhook_signature("other", body, signature)
    assert not verify_webhook_signature("secret", body, None)
