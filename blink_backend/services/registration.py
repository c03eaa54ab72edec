"""Registration (email OTP) and login"""

import logging
from datetime import timedelta
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from blink_backend.config import Settings
from blink_backend.domain.exceptions import AuthenticationError, RegistrationError
from blink_backend.infrastructure.clients.mailer import EmailSender
from blink_backend.infrastructure.database.models import User
from blink_backend.infrastructure.database.repositories import RegistrationSessionRepository, UserRepository
from blink_backend.infrastructure.security import (
    codes_match,
    create_access_token,
    generate_otp,
    hash_password,
    verify_password,
)
from blink_backend.utils.date_utils import as_utc, utcnow


class RegistrationService:
    """
    Per-email registration state machine.

    none → code issued → verified → completed (session deleted).
    Re-requesting a code while unverified overwrites code and expiry.
    """

    def __init__(self, db: Session, settings: Settings, mailer: EmailSender):
        self.db = db
        self.settings = settings
        self.mailer = mailer
        self.users = UserRepository(db)
        self.sessions = RegistrationSessionRepository(db)

    def _issue_code(self, email: str) -> None:
        code = generate_otp(self.settings.otp_length)
        expires_at = utcnow() + timedelta(minutes=self.settings.otp_validity_minutes)
        self.sessions.issue_code(email, code, expires_at)
        # Mail before commit so a delivery failure leaves no orphan code
        try:
            self.mailer.send_otp(email, code)
        except Exception:
            self.db.rollback()
            raise
        self.db.commit()

    def register_initial(self, email: str) -> None:
        if self.users.get_by_email(email) is not None:
            raise RegistrationError("User with this email already exists.")
        self._issue_code(email)
        logging.info("Registration started", extra={"step": "otp_issued"})

    def verify_otp(self, email: str, otp: str) -> None:
        session = self.sessions.get(email)
        if session is None:
            raise RegistrationError("No registration in progress for this email.")
        if as_utc(session.expires_at) < utcnow():
            raise RegistrationError("Verification code has expired. Please request a new one.")
        if not codes_match(session.otp_code, otp.strip()):
            raise RegistrationError("Invalid verification code.")

        self.sessions.mark_verified(session)
        self.db.commit()

    def resend_otp(self, email: str) -> None:
        # No throttling on resend; each call overwrites the previous code
        session = self.sessions.get(email)
        if session is None:
            raise RegistrationError("No registration in progress for this email.")
        if session.is_verified:
            raise RegistrationError("Email is already verified.")
        self._issue_code(email)

    def register_complete(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        state: Optional[str] = None,
        zipcode: Optional[str] = None,
    ) -> Tuple[User, str]:
        """Create the user from a verified session; returns (user, access token)"""
        session = self.sessions.get(email)
        if session is None or not session.is_verified:
            raise RegistrationError("Email has not been verified.")
        if self.users.get_by_email(email) is not None:
            raise RegistrationError("User with this email already exists.")

        user = self.users.create(
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            state=state,
            zipcode=zipcode,
        )
        self.sessions.delete(email)
        self.db.commit()
        logging.info("Registration completed", extra={"user_id": str(user.id), "step": "user_created"})
        return user, create_access_token(self.settings, str(user.id))

    def login(self, email: str, password: str) -> Tuple[User, str]:
        user = self.users.get_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            raise AuthenticationError("Invalid email or password.")
        return user, create_access_token(self.settings, str(user.id))
