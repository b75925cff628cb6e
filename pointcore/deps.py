import hmac
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from pointcore.config import Settings
from pointcore.core.exceptions import AuthenticationError, AuthorizationError
from pointcore.database.session import get_db

# Services
from pointcore.services.coupon_service import CouponService
from pointcore.services.daily_quota_service import DailyQuotaService
from pointcore.services.ledger_service import LedgerService


def get_app_settings(request: Request) -> Settings:
    return request.app.container.config()


def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-ID")
) -> str:
    """상위 인증 계층이 설정한 사용자 ID"""
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationError("X-User-ID header is required")
    return x_user_id.strip()


def require_admin(
    x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token"),
    settings: Settings = Depends(get_app_settings),
) -> None:
    if not settings.ADMIN_TOKEN:
        raise AuthorizationError("Admin access is not configured")
    if not x_admin_token or not hmac.compare_digest(x_admin_token, settings.ADMIN_TOKEN):
        raise AuthorizationError("Admin privileges required")


def get_ledger_service(
    db: Session = Depends(get_db), settings: Settings = Depends(get_app_settings)
) -> LedgerService:
    return LedgerService(db=db, settings=settings)


def get_coupon_service(
    db: Session = Depends(get_db), settings: Settings = Depends(get_app_settings)
) -> CouponService:
    return CouponService(db=db, settings=settings)


def get_daily_quota_service(
    db: Session = Depends(get_db), settings: Settings = Depends(get_app_settings)
) -> DailyQuotaService:
    return DailyQuotaService(db=db, settings=settings)
