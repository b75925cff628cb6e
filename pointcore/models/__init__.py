from pointcore.models.base import Base
from pointcore.models.coupon import Coupon, CouponRedemption
from pointcore.models.points import AccountBalance, PointTransaction
from pointcore.models.quota import DailyQuota

__all__ = [
    "Base",
    "AccountBalance",
    "PointTransaction",
    "Coupon",
    "CouponRedemption",
    "DailyQuota",
]
