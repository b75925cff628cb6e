"""
쿠폰 사용 서비스 - 일회성 프로모션 포인트 지급

핵심 기능:
1. 검증 (존재 → 활성 → 유효기간 → 대상 사용자 → 전체 한도 → 사용자별 한도 순)
2. 사용 처리 - 사용 기록 삽입, current_uses 증가, 원장 충전을 하나의 트랜잭션으로 커밋
3. 동시 중복 사용은 사용 기록 유니크 제약으로 거부 → 재검증 시 AlreadyRedeemed
4. 관리자 쿠폰 생성/수정/활성 전환 (current_uses는 사용 처리만 변경)
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pointcore.config import Settings, settings as default_settings
from pointcore.core.exceptions import (
    AlreadyRedeemedError,
    CouponExpiredError,
    CouponIneligibleError,
    CouponNotFoundError,
    NotFoundError,
    ValidationError,
)
from pointcore.database.unit_of_work import run_atomic, store_errors
from pointcore.models.coupon import Coupon, DiscountType, TargetAudience
from pointcore.models.points import TransactionKind
from pointcore.repositories.coupon_repository import CouponRepository
from pointcore.schemas.coupon import (
    CouponCreate,
    CouponOutcome,
    CouponSchema,
    CouponUpdate,
    RedemptionEntry,
    normalize_code,
)
from pointcore.services.ledger_service import LedgerService
from pointcore.utils.timezone_utils import ensure_aware

logger = logging.getLogger(__name__)


class CouponService:
    """쿠폰 검증/사용 비즈니스 로직을 담당하는 서비스"""

    def __init__(
        self,
        db: Session,
        settings: Settings = default_settings,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.settings = settings
        self.coupon_repo = CouponRepository(db)
        self.ledger = LedgerService(db, settings)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def validate(self, code: str, user_id: str) -> CouponSchema:
        """쿠폰 사용 가능 여부 검증 (읽기 전용)

        Raises:
            CouponNotFoundError, CouponIneligibleError, CouponExpiredError,
            AlreadyRedeemedError, ValidationError
        """
        with store_errors(self.db, "coupon.validate"):
            coupon, _ = self._check(code, user_id)
            return CouponSchema.model_validate(coupon)

    def redeem(self, code: str, user_id: str) -> CouponOutcome:
        """쿠폰 사용

        검증을 작업 단위 안에서 다시 수행한 뒤 다음을 한 번에 커밋합니다:
        사용 기록 삽입, current_uses 증가, (포인트 쿠폰이면) 원장 충전 + coupon_grant 거래.

        Returns:
            CouponOutcome: 지급 포인트와 새 잔액
        """

        def unit() -> CouponOutcome:
            coupon, prior_uses = self._check(code, user_id)
            sequence = prior_uses + 1
            points = (
                coupon.discount_value
                if coupon.discount_type == DiscountType.POINTS.value
                else 0
            )

            self.coupon_repo.add_redemption(coupon.id, user_id, sequence, points)

            if not self.coupon_repo.increment_uses(coupon.id):
                raise CouponIneligibleError(
                    coupon.code,
                    "usage_limit_reached",
                    "Coupon usage limit has been reached",
                )

            balance = None
            if points > 0:
                _, balance = self.ledger.apply_in_unit(
                    user_id,
                    points,
                    TransactionKind.COUPON_GRANT,
                    f"Coupon redeemed: {coupon.code}",
                    ref_id=f"coupon:{coupon.id}:{user_id}:{sequence}",
                )

            # 조건부 UPDATE로 바뀐 값을 다음 접근 시 다시 읽도록
            self.db.expire(coupon)

            return CouponOutcome(
                success=True,
                code=coupon.code,
                points_granted=points,
                balance=balance,
                message="Coupon applied",
            )

        try:
            outcome = run_atomic(
                self.db,
                unit,
                operation="coupon.redeem",
                max_retries=self.settings.COUPON_MAX_RETRIES,
                backoff_ms=self.settings.LEDGER_RETRY_BACKOFF_MS,
            )
        except Exception as e:
            logger.warning(f"Coupon {code!r} redemption by user {user_id} failed: {str(e)}")
            raise

        logger.info(
            f"User {user_id} redeemed coupon {outcome.code}: +{outcome.points_granted} points"
        )
        return outcome

    def _check(self, code: str, user_id: str) -> Tuple[Coupon, int]:
        """검증 규칙 적용 - (쿠폰, 이 사용자의 기존 사용 횟수) 반환"""
        if not isinstance(code, str) or not normalize_code(code):
            raise ValidationError("Coupon code is required")
        if not isinstance(user_id, str) or not user_id.strip():
            raise ValidationError("user_id is required")

        normalized = normalize_code(code)
        coupon = self.coupon_repo.get_by_code(normalized)
        if coupon is None:
            raise CouponNotFoundError(normalized)

        if not coupon.is_active:
            raise CouponIneligibleError(
                normalized, "inactive", "This coupon has been deactivated"
            )

        now = ensure_aware(self._clock())
        if now < ensure_aware(coupon.valid_from):
            raise CouponIneligibleError(
                normalized, "not_yet_valid", "This coupon is not valid yet"
            )
        if now > ensure_aware(coupon.valid_until):
            raise CouponExpiredError(normalized)

        if coupon.target_audience == TargetAudience.SPECIFIC.value and user_id not in (
            coupon.specific_user_ids or []
        ):
            raise CouponIneligibleError(
                normalized, "audience", "This coupon is not available for this user"
            )

        if coupon.max_uses is not None and coupon.current_uses >= coupon.max_uses:
            raise CouponIneligibleError(
                normalized,
                "usage_limit_reached",
                "Coupon usage limit has been reached",
            )

        prior_uses = self.coupon_repo.count_user_redemptions(coupon.id, user_id)
        if prior_uses >= coupon.max_uses_per_user:
            raise AlreadyRedeemedError(normalized)

        return coupon, prior_uses

    def create_coupon(self, payload: CouponCreate) -> CouponSchema:
        """관리자 쿠폰 생성"""

        def unit() -> CouponSchema:
            if self.coupon_repo.get_by_code(payload.code) is not None:
                raise ValidationError(
                    "Coupon code already exists", details={"code": payload.code}
                )
            values = payload.model_dump()
            values["discount_type"] = payload.discount_type.value
            values["target_audience"] = payload.target_audience.value
            try:
                coupon = self.coupon_repo.add(**values)
            except IntegrityError as e:
                raise ValidationError(
                    "Coupon code already exists", details={"code": payload.code}
                ) from e
            return CouponSchema.model_validate(coupon)

        coupon = run_atomic(
            self.db, unit, operation="coupon.create", max_retries=0, backoff_ms=0
        )
        logger.info(f"Coupon {coupon.code} created ({coupon.discount_type.value})")
        return coupon

    def set_active(self, coupon_id: int, is_active: bool) -> CouponSchema:
        """관리자 쿠폰 활성/비활성 전환"""

        def unit() -> CouponSchema:
            coupon = self._get_coupon(coupon_id)
            coupon.is_active = is_active
            self.db.flush()
            return CouponSchema.model_validate(coupon)

        coupon = run_atomic(
            self.db, unit, operation="coupon.set_active", max_retries=0, backoff_ms=0
        )
        logger.info(
            f"Coupon {coupon.code} {'activated' if is_active else 'deactivated'}"
        )
        return coupon

    def update_coupon(self, coupon_id: int, payload: CouponUpdate) -> CouponSchema:
        """
        관리자 쿠폰 수정

        current_uses는 사용 처리만 증가시키므로 수정 대상에서 제외합니다.
        변경된 컬럼만 UPDATE 되어 동시 사용 처리의 증가분을 덮어쓰지 않습니다.
        """

        def unit() -> CouponSchema:
            coupon = self._get_coupon(coupon_id)
            if payload.code != coupon.code:
                existing = self.coupon_repo.get_by_code(payload.code)
                if existing is not None and existing.id != coupon.id:
                    raise ValidationError(
                        "Coupon code already exists", details={"code": payload.code}
                    )

            values = payload.model_dump()
            values["discount_type"] = payload.discount_type.value
            values["target_audience"] = payload.target_audience.value
            for key, value in values.items():
                setattr(coupon, key, value)
            try:
                self.db.flush()
            except IntegrityError as e:
                raise ValidationError(
                    "Coupon code already exists", details={"code": payload.code}
                ) from e
            return CouponSchema.model_validate(coupon)

        coupon = run_atomic(
            self.db, unit, operation="coupon.update", max_retries=0, backoff_ms=0
        )
        logger.info(f"Coupon {coupon_id} updated ({coupon.code})")
        return coupon

    def _get_coupon(self, coupon_id: int) -> Coupon:
        coupon = self.coupon_repo.get_by_id(coupon_id)
        if coupon is None:
            raise NotFoundError(
                "Coupon not found",
                details={"coupon_id": coupon_id},
                error_code="COUPON_001",
            )
        return coupon

    def list_user_redemptions(self, user_id: str) -> List[RedemptionEntry]:
        with store_errors(self.db, "coupon.list_redemptions"):
            return self.coupon_repo.list_user_redemptions(user_id)
