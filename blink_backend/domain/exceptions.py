"""Domain-specific exceptions"""

from typing import Any, Optional


class DomainException(Exception):
    """Base exception for domain layer"""

    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class AuthenticationError(DomainException):
    """Missing credentials or unknown user"""

    status_code = 401


class AuthorizationError(DomainException):
    """Invalid token or access to another user's resources"""

    status_code = 403


class NotFoundError(DomainException):
    """Requested entity does not exist for this user"""

    status_code = 404


class DomainRuleError(DomainException):
    """A business rule rejected the request"""

    status_code = 400


class InvalidStatusTransitionError(DomainRuleError):
    """Advance status change not present in the transition table"""

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot transition from {current} to {target}.")
        self.current = current
        self.target = target


class ActiveAdvanceExistsError(DomainRuleError):
    """User already has an advance in flight"""

    def __init__(self):
        super().__init__(
            "You already have an active advance. Please complete it before requesting a new one."
        )


class RepaymentDateError(DomainRuleError):
    """Requested repayment date is outside the allowed window"""

    pass


class RegistrationError(DomainRuleError):
    """Registration/OTP flow is in the wrong state for this step"""

    pass


class TransferDeclinedError(DomainRuleError):
    """Plaid declined the transfer authorization"""

    pass


class PlaidAPIError(DomainException):
    """Plaid returned an error or is unavailable"""

    status_code = 500

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        error_type: Optional[str] = None,
        error_message: Optional[str] = None,
    ):
        details = None
        if error_code or error_message:
            details = {
                "error_type": error_type,
                "error_code": error_code,
                "error_message": error_message,
            }
        super().__init__(message, details)
        self.error_code = error_code
        self.error_type = error_type


class EmailDeliveryError(DomainException):
    """OTP email could not be sent"""

    status_code = 500
