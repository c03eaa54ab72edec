"""Password hashing, access tokens and webhook signatures"""

import hashlib
import hmac
import secrets
from datetime import timedelta

import bcrypt
from jose import jwt, JWTError

from blink_backend.config import Settings
from blink_backend.domain.exceptions import AuthorizationError
from blink_backend.utils.date_utils import utcnow


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def create_access_token(settings: Settings, user_id: str) -> str:
    expires = utcnow() + timedelta(minutes=settings.jwt_expires_minutes)
    payload = {"sub": user_id, "exp": expires}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(settings: Settings, token: str) -> str:
    """
    Return the user id carried by a token.

    Raises:
        AuthorizationError: Bad signature, expired, or missing subject
    """
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise AuthorizationError("Invalid or expired token.") from e

    user_id = payload.get("sub")
    if not user_id:
        raise AuthorizationError("Invalid or expired token.")
    return user_id


def generate_otp(length: int = 6) -> str:
    """Numeric one-time code, zero-padded"""
    return "".join(secrets.choice("0123456789") for _ in range(length))


def codes_match(expected: str, supplied: str) -> bool:
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))


def sign_webhook(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_webhook_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """HMAC-SHA256 hex digest over the raw request body"""
    if not signature:
        return False
    return hmac.compare_digest(sign_webhook(secret, body), signature.strip().lower())
