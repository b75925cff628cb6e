from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class BaseAPIException(HTTPException):
    """Base exception for API errors"""
    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}

        super().__init__(
            status_code=status_code,
            detail={
                "success": False,
                "error": {
                    "code": error_code,
                    "message": message,
                    "details": self.details
                }
            },
            headers=headers,
        )

    def __str__(self) -> str:  # Ensure str(e) returns the human message
        return self.message


class AuthenticationError(BaseAPIException):
    """Authentication related errors"""
    def __init__(self, message: str = "Authentication failed", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code="AUTH_001",
            message=message,
            details=details
        )


class AuthorizationError(BaseAPIException):
    """Authorization related errors"""
    def __init__(self, message: str = "Access forbidden", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="AUTH_002",
            message=message,
            details=details
        )


class ValidationError(BaseAPIException):
    """Malformed caller input"""
    def __init__(self, message: str = "Validation failed", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="VALIDATION_001",
            message=message,
            details=details
        )


class NotFoundError(BaseAPIException):
    """Resource not found errors"""
    def __init__(
        self,
        message: str = "Resource not found",
        details: Optional[Dict] = None,
        error_code: str = "NOT_FOUND_001",
    ):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            error_code=error_code,
            message=message,
            details=details
        )


class InsufficientBalanceError(BaseAPIException):
    """Debit would take the balance below zero"""
    def __init__(self, required: int, available: int, message: str = "Insufficient balance"):
        self.required = required
        self.available = available
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="BALANCE_001",
            message=message,
            details={"required": required, "available": available}
        )


# ----------------------------------------------------------------------------
# Coupon errors
# ----------------------------------------------------------------------------


class CouponNotFoundError(NotFoundError):
    def __init__(self, code: str):
        super().__init__(
            message="Coupon code not found",
            details={"code": code},
            error_code="COUPON_001",
        )


class CouponExpiredError(BaseAPIException):
    def __init__(self, code: str, message: str = "Coupon has expired"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="COUPON_002",
            message=message,
            details={"code": code, "reason": "expired"}
        )


class CouponIneligibleError(BaseAPIException):
    """쿠폰이 존재하지만 현재 사용자가 사용할 수 없는 경우

    reason: inactive | not_yet_valid | audience | usage_limit_reached
    """
    def __init__(self, code: str, reason: str, message: str = "Coupon cannot be used"):
        self.reason = reason
        super().__init__(
            status_code=(
                status.HTTP_403_FORBIDDEN
                if reason == "audience"
                else status.HTTP_400_BAD_REQUEST
            ),
            error_code="COUPON_003",
            message=message,
            details={"code": code, "reason": reason}
        )


class AlreadyRedeemedError(BaseAPIException):
    def __init__(self, code: str, message: str = "Coupon already redeemed"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error_code="COUPON_004",
            message=message,
            details={"code": code}
        )


# ----------------------------------------------------------------------------
# Throttling errors (carry a retry hint in seconds)
# ----------------------------------------------------------------------------


class RateLimitExceededError(BaseAPIException):
    def __init__(
        self,
        retry_after: int,
        limit: Optional[int] = None,
        message: str = "Too many requests",
    ):
        self.retry_after = retry_after
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            error_code="RATE_LIMIT_001",
            message=message,
            details={"retry_after": retry_after, "limit": limit},
            headers={"Retry-After": str(retry_after)},
        )


class DailyQuotaExceededError(BaseAPIException):
    def __init__(
        self,
        retry_after: int,
        limit: int,
        current: int,
        message: str = "Daily quota exceeded",
    ):
        self.retry_after = retry_after
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            error_code="QUOTA_001",
            message=message,
            details={"retry_after": retry_after, "limit": limit, "current": current},
            headers={"Retry-After": str(retry_after)},
        )


class StoreUnavailableError(BaseAPIException):
    """Transient infrastructure fault"""
    def __init__(self, message: str = "Store temporarily unavailable", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="STORE_001",
            message=message,
            details=details
        )


class InternalServerError(BaseAPIException):
    """Internal server errors"""
    def __init__(self, message: str = "Internal server error", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="INTERNAL_001",
            message=message,
            details=details
        )
