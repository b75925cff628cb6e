"""
쿠폰 데이터 모델

coupon_redemptions의 (coupon_id, user_id, sequence) 유니크 제약이
동시 중복 사용을 저장소 레벨에서 차단합니다.
max_uses_per_user = 1 이면 sequence는 항상 1이므로 (coupon_id, user_id) 유니크와 동일합니다.
"""

import enum
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from pointcore.models.base import Base, BaseModel, BigIntPK, utc_now


class DiscountType(str, enum.Enum):
    POINTS = "points"
    PERCENTAGE = "percentage"


class TargetAudience(str, enum.Enum):
    ALL = "all"
    SPECIFIC = "specific"


class Coupon(BaseModel):
    __tablename__ = "coupons"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    discount_type: Mapped[str] = mapped_column(
        String(16), nullable=False, default=DiscountType.POINTS.value
    )
    discount_value: Mapped[int] = mapped_column(Integer, nullable=False)
    valid_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    valid_until: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # NULL이면 전체 사용 횟수 무제한
    max_uses: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_uses_per_user: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    target_audience: Mapped[str] = mapped_column(
        String(16), nullable=False, default=TargetAudience.ALL.value
    )
    specific_user_ids: Mapped[List[str]] = mapped_column(
        JSON, nullable=False, default=list
    )
    current_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class CouponRedemption(Base):
    __tablename__ = "coupon_redemptions"
    __table_args__ = (
        UniqueConstraint(
            "coupon_id", "user_id", "sequence", name="uq_coupon_redemption_user_seq"
        ),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    coupon_id: Mapped[int] = mapped_column(
        ForeignKey("coupons.id"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    # 같은 사용자의 n번째 사용 (1부터 시작)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    points_granted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    redeemed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
