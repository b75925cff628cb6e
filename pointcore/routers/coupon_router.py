"""
쿠폰 API 라우터

- POST /coupons/validate: 쿠폰 사용 가능 여부 확인
- POST /coupons/redeem: 쿠폰 사용
- GET /coupons/redemptions: 내 쿠폰 사용 내역
- POST /coupons/admin: 쿠폰 생성 (X-Admin-Token 필요)
- PATCH /coupons/admin/{coupon_id}: 활성/비활성 전환 (X-Admin-Token 필요)
- PUT /coupons/admin/{coupon_id}: 쿠폰 수정 (X-Admin-Token 필요)
"""

from typing import List

from fastapi import APIRouter, Depends, Path, status

from pointcore.deps import get_coupon_service, get_current_user_id, require_admin
from pointcore.schemas.coupon import (
    CouponActiveRequest,
    CouponCodeRequest,
    CouponCreate,
    CouponOutcome,
    CouponSchema,
    CouponUpdate,
    CouponValidationResponse,
    RedemptionEntry,
)
from pointcore.services.coupon_service import CouponService

router = APIRouter(prefix="/coupons", tags=["coupons"])


@router.post("/validate", response_model=CouponValidationResponse)
def validate_coupon(
    request: CouponCodeRequest,
    user_id: str = Depends(get_current_user_id),
    coupon_service: CouponService = Depends(get_coupon_service),
) -> CouponValidationResponse:
    coupon = coupon_service.validate(request.code, user_id)
    return CouponValidationResponse(
        coupon_id=coupon.id,
        code=coupon.code,
        discount_type=coupon.discount_type,
        discount_value=coupon.discount_value,
    )


@router.post("/redeem", response_model=CouponOutcome)
def redeem_coupon(
    request: CouponCodeRequest,
    user_id: str = Depends(get_current_user_id),
    coupon_service: CouponService = Depends(get_coupon_service),
) -> CouponOutcome:
    """
    쿠폰 사용

    HTTP Status:
        200: 사용 완료 (포인트 쿠폰이면 잔액 포함)
        400: 만료/비활성/한도 도달
        403: 대상 사용자가 아님
        404: 존재하지 않는 코드
        409: 이미 사용한 쿠폰
    """
    return coupon_service.redeem(request.code, user_id)


@router.get("/redemptions", response_model=List[RedemptionEntry])
def list_my_redemptions(
    user_id: str = Depends(get_current_user_id),
    coupon_service: CouponService = Depends(get_coupon_service),
) -> List[RedemptionEntry]:
    return coupon_service.list_user_redemptions(user_id)


@router.post(
    "/admin",
    response_model=CouponSchema,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_coupon(
    payload: CouponCreate,
    coupon_service: CouponService = Depends(get_coupon_service),
) -> CouponSchema:
    return coupon_service.create_coupon(payload)


@router.patch(
    "/admin/{coupon_id}",
    response_model=CouponSchema,
    dependencies=[Depends(require_admin)],
)
def set_coupon_active(
    request: CouponActiveRequest,
    coupon_id: int = Path(..., description="쿠폰 ID"),
    coupon_service: CouponService = Depends(get_coupon_service),
) -> CouponSchema:
    """쿠폰 활성/비활성 전환 (관리자 전용)"""
    return coupon_service.set_active(coupon_id, request.is_active)


@router.put(
    "/admin/{coupon_id}",
    response_model=CouponSchema,
    dependencies=[Depends(require_admin)],
)
def update_coupon(
    payload: CouponUpdate,
    coupon_id: int = Path(..., description="쿠폰 ID"),
    coupon_service: CouponService = Depends(get_coupon_service),
) -> CouponSchema:
    """
    쿠폰 수정 (관리자 전용)

    사용 횟수(current_uses)는 요청 본문과 관계없이 유지됩니다.
    """
    return coupon_service.update_coupon(coupon_id, payload)
