"""
Error taxonomy shared by services and routes.

Every error is an HTTPException so services can raise it directly and routes
re-raise it untouched. The handlers registered in app.main render `detail` as
the JSON body: a string becomes {"message": ...}, a dict is merged in.
"""

from typing import Optional

from fastapi import HTTPException, status

from app.services.tier_policy import TIER_LIMITS


class MissingPrincipalError(HTTPException):
    def __init__(self):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Authentication or guestId required",
        )


class UnauthorizedError(HTTPException):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=message,
            headers={"WWW-Authenticate": "Bearer"},
        )


class NotFoundError(HTTPException):
    """Raised both for missing rows and rows owned by another principal"""

    def __init__(self, resource: str = "Resource"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found",
        )


class QuotaExceededError(HTTPException):
    def __init__(self, current: int, limit: int, tier: str):
        if tier == 'free':
            message = f"Question limit reached. Upgrade to premium for up to {TIER_LIMITS['premium']} questions."
        else:
            message = f"Question limit reached. Maximum of {limit} questions reached."
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "message": message,
                "currentCount": current,
                "limit": limit,
                "tier": tier,
            },
        )
        self.current = current
        self.limit = limit
        self.tier = tier


class FeatureNotAvailableError(HTTPException):
    def __init__(self, feature: str, tier: str):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "message": f"'{feature}' is not available on the {tier} plan",
                "feature": feature,
                "tier": tier,
            },
        )


class ConflictError(HTTPException):
    def __init__(self, message: str):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=message)


class BadRequestError(HTTPException):
    def __init__(self, message: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


class PaymentConfigurationError(HTTPException):
    def __init__(self, message: str = "Payment provider is not configured"):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=message,
        )


class PaymentError(HTTPException):
    def __init__(self, message: str = "Payment could not be processed", status_code: Optional[int] = None):
        super().__init__(
            status_code=status_code or status.HTTP_402_PAYMENT_REQUIRED,
            detail=message,
        )


class EmailDeliveryError(Exception):
    """Raised by the email service when no transport accepted the message"""
