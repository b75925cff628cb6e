from typing import List, Optional

from sqlalchemy import desc, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pointcore.database.unit_of_work import OptimisticConflict
from pointcore.models.base import utc_now
from pointcore.models.coupon import Coupon, CouponRedemption
from pointcore.repositories.base import BaseRepository
from pointcore.schemas.coupon import CouponSchema, RedemptionEntry


class CouponRepository(BaseRepository[Coupon, CouponSchema]):
    """쿠폰 및 쿠폰 사용 기록 데이터 접근 계층"""

    def __init__(self, db: Session):
        super().__init__(Coupon, CouponSchema, db)

    def get_by_code(self, code: str) -> Optional[Coupon]:
        return self.get_by_field("code", code)

    def count_user_redemptions(self, coupon_id: int, user_id: str) -> int:
        return (
            self.db.query(CouponRedemption)
            .filter(
                CouponRedemption.coupon_id == coupon_id,
                CouponRedemption.user_id == user_id,
            )
            .count()
        )

    def add_redemption(
        self, coupon_id: int, user_id: str, sequence: int, points_granted: int
    ) -> CouponRedemption:
        """
        사용 기록 삽입 - (coupon_id, user_id, sequence) 유니크 제약이 동시 중복을 거부

        Raises:
            OptimisticConflict: 다른 트랜잭션이 같은 sequence를 먼저 기록한 경우
        """
        redemption = CouponRedemption(
            coupon_id=coupon_id,
            user_id=user_id,
            sequence=sequence,
            points_granted=points_granted,
        )
        self.db.add(redemption)
        try:
            self.db.flush()
        except IntegrityError as e:
            raise OptimisticConflict(
                f"coupon {coupon_id} redeemed concurrently by {user_id}"
            ) from e
        return redemption

    def increment_uses(self, coupon_id: int) -> bool:
        """
        current_uses 원자적 증가 - 전체 사용 한도 이내일 때만

        Returns:
            bool: 증가 성공 여부 (False면 한도 소진)
        """
        result = self.db.execute(
            update(Coupon)
            .where(
                Coupon.id == coupon_id,
                or_(Coupon.max_uses.is_(None), Coupon.current_uses < Coupon.max_uses),
            )
            .values(current_uses=Coupon.current_uses + 1, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def list_user_redemptions(self, user_id: str) -> List[RedemptionEntry]:
        redemptions = (
            self.db.query(CouponRedemption)
            .filter(CouponRedemption.user_id == user_id)
            .order_by(desc(CouponRedemption.id))
            .all()
        )
        return [RedemptionEntry.model_validate(r) for r in redemptions]
