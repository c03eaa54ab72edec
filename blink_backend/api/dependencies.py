"""Dependency injection for FastAPI endpoints"""

import uuid
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from blink_backend.config import Settings
from blink_backend.domain.advances import AdvancePolicy
from blink_backend.domain.exceptions import AuthenticationError, AuthorizationError
from blink_backend.infrastructure.clients.mailer import EmailSender
from blink_backend.infrastructure.clients.plaid import PlaidClient
from blink_backend.infrastructure.database.models import User
from blink_backend.infrastructure.database.repositories import UserRepository
from blink_backend.infrastructure.database.session import get_db
from blink_backend.infrastructure.security import decode_access_token

bearer_scheme = HTTPBearer(auto_error=False)


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_advance_policy(settings: Settings = Depends(get_settings)) -> AdvancePolicy:
    return AdvancePolicy.from_settings(settings)


def get_plaid_client(request: Request) -> PlaidClient:
    """Provide the Plaid client built at startup"""
    return request.app.state.plaid_client


def get_email_sender(request: Request) -> EmailSender:
    return request.app.state.email_sender


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
) -> User:
    """
    Resolve the bearer token to a user.

    Missing token → 401, bad or expired token → 403, token for a user that
    no longer exists → 401.
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Access token is required.")

    subject = decode_access_token(settings, credentials.credentials)
    try:
        user_id = uuid.UUID(subject)
    except ValueError as e:
        raise AuthorizationError("Invalid or expired token.") from e

    user = UserRepository(db).get(user_id)
    if user is None:
        raise AuthenticationError("User not found.")
    return user


def ensure_same_user(current_user: User, requested_user_id: Optional[uuid.UUID]) -> None:
    """A user id in a body or path must name the caller"""
    if requested_user_id is not None and requested_user_id != current_user.id:
        raise AuthorizationError("You can only access your own data.")
