"""/api/users - registration (email OTP), login and profile"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from blink_backend.api.dependencies import get_current_user, get_email_sender, get_settings
from blink_backend.api.v1.schemas import (
    ApiResponse,
    AuthResult,
    LoginRequest,
    RegisterCompleteRequest,
    RegisterInitialRequest,
    ResendOtpRequest,
    UserProfile,
    VerifyOtpRequest,
)
from blink_backend.config import Settings
from blink_backend.infrastructure.clients.mailer import EmailSender
from blink_backend.infrastructure.database.models import User
from blink_backend.infrastructure.database.session import get_db
from blink_backend.services.registration import RegistrationService

router = APIRouter()


def get_registration_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    mailer: EmailSender = Depends(get_email_sender),
) -> RegistrationService:
    return RegistrationService(db, settings, mailer)


@router.post("/register-initial", response_model=ApiResponse[None])
def register_initial(
    body: RegisterInitialRequest,
    service: RegistrationService = Depends(get_registration_service),
):
    """Issue a verification code to a new email"""
    service.register_initial(body.email)
    return ApiResponse(message="Verification code sent to your email.")


@router.post("/verify-otp", response_model=ApiResponse[None])
def verify_otp(
    body: VerifyOtpRequest,
    service: RegistrationService = Depends(get_registration_service),
):
    service.verify_otp(body.email, body.otp)
    return ApiResponse(message="Email verified successfully.")


@router.post("/resend-otp", response_model=ApiResponse[None])
def resend_otp(
    body: ResendOtpRequest,
    service: RegistrationService = Depends(get_registration_service),
):
    service.resend_otp(body.email)
    return ApiResponse(message="A new verification code has been sent.")


@router.post("/register-complete", response_model=ApiResponse[AuthResult], status_code=201)
def register_complete(
    body: RegisterCompleteRequest,
    service: RegistrationService = Depends(get_registration_service),
):
    """Create the account once the email is verified; returns a token"""
    user, token = service.register_complete(
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        state=body.state,
        zipcode=body.zipcode,
    )
    return ApiResponse(
        data=AuthResult(token=token, user=UserProfile.model_validate(user)),
        message="Registration completed successfully.",
    )


@router.post("/login", response_model=ApiResponse[AuthResult])
def login(
    body: LoginRequest,
    service: RegistrationService = Depends(get_registration_service),
):
    user, token = service.login(body.email, body.password)
    return ApiResponse(data=AuthResult(token=token, user=UserProfile.model_validate(user)))


@router.get("/profile", response_model=ApiResponse[UserProfile])
def profile(current_user: User = Depends(get_current_user)):
    return ApiResponse(data=UserProfile.model_validate(current_user))
