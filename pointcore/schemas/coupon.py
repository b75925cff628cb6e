from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from pointcore.models.coupon import DiscountType, TargetAudience


def normalize_code(code: str) -> str:
    return code.strip().upper()


class CouponSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: int
    valid_from: datetime
    valid_until: datetime
    max_uses: Optional[int] = None
    max_uses_per_user: int = 1
    target_audience: TargetAudience = TargetAudience.ALL
    specific_user_ids: List[str] = Field(default_factory=list)
    current_uses: int = 0
    is_active: bool = True


class CouponCreate(BaseModel):
    """관리자 쿠폰 생성 요청"""

    code: str = Field(..., min_length=1, max_length=64)
    description: Optional[str] = None
    discount_type: DiscountType = DiscountType.POINTS
    discount_value: int = Field(..., gt=0)
    valid_from: datetime
    valid_until: datetime
    max_uses: Optional[int] = Field(None, gt=0)
    max_uses_per_user: int = Field(1, gt=0)
    target_audience: TargetAudience = TargetAudience.ALL
    specific_user_ids: List[str] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        value = normalize_code(value)
        if not value:
            raise ValueError("code must not be blank")
        return value

    @model_validator(mode="after")
    def _check_rules(self):
        if self.valid_until <= self.valid_from:
            raise ValueError("valid_until must be after valid_from")
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError("percentage discount must be between 1 and 100")
        return self


class CouponUpdate(CouponCreate):
    """관리자 쿠폰 수정 요청 - 전체 필드 교체, current_uses는 변경하지 않음"""


class CouponActiveRequest(BaseModel):
    is_active: bool


class CouponCodeRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)


class CouponValidationResponse(BaseModel):
    success: bool = True
    coupon_id: int
    code: str
    discount_type: DiscountType
    discount_value: int


class CouponOutcome(BaseModel):
    """쿠폰 사용 결과"""

    success: bool
    code: str
    points_granted: int = 0
    balance: Optional[int] = Field(None, description="포인트 지급 후 잔액")
    message: str = ""


class RedemptionEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    coupon_id: int
    user_id: str
    sequence: int
    points_granted: int
    redeemed_at: datetime
