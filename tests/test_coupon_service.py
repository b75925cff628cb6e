from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from pointcore.core.exceptions import (
    AlreadyRedeemedError,
    CouponExpiredError,
    CouponIneligibleError,
    CouponNotFoundError,
    NotFoundError,
    ValidationError,
)
from pointcore.models.coupon import Coupon, CouponRedemption, DiscountType
from pointcore.models.points import PointTransaction, TransactionKind
from pointcore.schemas.coupon import CouponCreate, CouponUpdate
from pointcore.services.coupon_service import CouponService
from pointcore.services.ledger_service import LedgerService


@pytest.fixture
def coupon_service(db, settings):
    return CouponService(db, settings)


def _current_uses(session_factory, code):
    with session_factory() as session:
        return session.query(Coupon.current_uses).filter(Coupon.code == code).scalar()


class TestCouponRedemption:
    """쿠폰 사용 시나리오 테스트"""

    def test_welcome_coupon_credits_once(self, coupon_service, make_coupon, session_factory, settings):
        make_coupon("WELCOME500", max_uses=100, max_uses_per_user=1)

        outcome = coupon_service.redeem("welcome500", "user-1")

        assert outcome.success is True
        assert outcome.code == "WELCOME500"
        assert outcome.points_granted == 500
        assert outcome.balance == 500
        assert _current_uses(session_factory, "WELCOME500") == 1

        with pytest.raises(AlreadyRedeemedError):
            coupon_service.redeem("WELCOME500", "user-1")

        assert _current_uses(session_factory, "WELCOME500") == 1
        with session_factory() as session:
            assert LedgerService(session, settings).get_balance("user-1").balance == 500

    def test_grant_is_recorded_as_coupon_transaction(self, coupon_service, make_coupon, db):
        coupon = make_coupon("WELCOME500")

        coupon_service.redeem("WELCOME500", "user-1")

        transaction = db.query(PointTransaction).filter_by(user_id="user-1").one()
        assert transaction.kind == TransactionKind.COUPON_GRANT.value
        assert transaction.amount == 500
        assert "WELCOME500" in transaction.description
        assert transaction.ref_id == f"coupon:{coupon.id}:user-1:1"

    def test_percentage_coupon_records_redemption_without_points(
        self, coupon_service, make_coupon, db
    ):
        make_coupon("SPRING20", discount_type="percentage", discount_value=20)

        outcome = coupon_service.redeem("SPRING20", "user-1")

        assert outcome.points_granted == 0
        assert outcome.balance is None
        assert db.query(CouponRedemption).count() == 1
        assert db.query(PointTransaction).count() == 0

    def test_multi_use_coupon_allows_up_to_per_user_cap(self, coupon_service, make_coupon, db):
        make_coupon("DAILY100", discount_value=100, max_uses_per_user=2)

        coupon_service.redeem("DAILY100", "user-1")
        second = coupon_service.redeem("DAILY100", "user-1")

        assert second.balance == 200
        with pytest.raises(AlreadyRedeemedError):
            coupon_service.redeem("DAILY100", "user-1")

        sequences = [
            row.sequence
            for row in db.query(CouponRedemption).order_by(CouponRedemption.sequence)
        ]
        assert sequences == [1, 2]

    def test_global_cap_is_enforced(self, coupon_service, make_coupon, session_factory):
        make_coupon("LIMITED", max_uses=2)

        coupon_service.redeem("LIMITED", "user-1")
        coupon_service.redeem("LIMITED", "user-2")

        with pytest.raises(CouponIneligibleError) as exc_info:
            coupon_service.redeem("LIMITED", "user-3")

        assert exc_info.value.reason == "usage_limit_reached"
        assert _current_uses(session_factory, "LIMITED") == 2

    def test_list_user_redemptions(self, coupon_service, make_coupon):
        make_coupon("FIRST")
        make_coupon("SECOND", discount_value=100)
        coupon_service.redeem("FIRST", "user-1")
        coupon_service.redeem("SECOND", "user-1")
        coupon_service.redeem("FIRST", "user-2")

        redemptions = coupon_service.list_user_redemptions("user-1")

        assert len(redemptions) == 2
        assert [r.points_granted for r in redemptions] == [100, 500]


class TestCouponValidation:
    def test_unknown_code(self, coupon_service):
        with pytest.raises(CouponNotFoundError) as exc_info:
            coupon_service.validate("missing", "user-1")
        assert exc_info.value.status_code == 404

    def test_blank_code_is_validation_error(self, coupon_service):
        with pytest.raises(ValidationError):
            coupon_service.validate("   ", "user-1")

    def test_inactive_coupon(self, coupon_service, make_coupon):
        make_coupon("OFF", is_active=False)
        with pytest.raises(CouponIneligibleError) as exc_info:
            coupon_service.validate("OFF", "user-1")
        assert exc_info.value.reason == "inactive"

    def test_expired_coupon(self, coupon_service, make_coupon):
        now = datetime.now(timezone.utc)
        make_coupon(
            "OLD",
            valid_from=now - timedelta(days=10),
            valid_until=now - timedelta(days=1),
        )
        with pytest.raises(CouponExpiredError):
            coupon_service.validate("OLD", "user-1")

    def test_not_yet_valid_coupon(self, coupon_service, make_coupon):
        now = datetime.now(timezone.utc)
        make_coupon(
            "SOON",
            valid_from=now + timedelta(days=1),
            valid_until=now + timedelta(days=10),
        )
        with pytest.raises(CouponIneligibleError) as exc_info:
            coupon_service.validate("SOON", "user-1")
        assert exc_info.value.reason == "not_yet_valid"

    def test_specific_audience(self, coupon_service, make_coupon):
        make_coupon("VIP", target_audience="specific", specific_user_ids=["vip-1"])

        assert coupon_service.validate("VIP", "vip-1").code == "VIP"
        with pytest.raises(CouponIneligibleError) as exc_info:
            coupon_service.validate("VIP", "user-1")
        assert exc_info.value.reason == "audience"
        assert exc_info.value.status_code == 403

    def test_inactive_is_reported_before_expiry(self, coupon_service, make_coupon):
        """검증 순서: 활성 여부가 유효기간보다 먼저"""
        now = datetime.now(timezone.utc)
        make_coupon(
            "BOTH",
            is_active=False,
            valid_from=now - timedelta(days=10),
            valid_until=now - timedelta(days=1),
        )
        with pytest.raises(CouponIneligibleError):
            coupon_service.validate("BOTH", "user-1")

    def test_clock_is_injectable(self, db, settings, make_coupon):
        now = datetime.now(timezone.utc)
        make_coupon("CLOCK", valid_until=now + timedelta(days=1))
        later = CouponService(db, settings, clock=lambda: now + timedelta(days=2))

        with pytest.raises(CouponExpiredError):
            later.validate("CLOCK", "user-1")


class TestCouponAdmin:
    def test_create_coupon_normalises_code(self, coupon_service):
        now = datetime.now(timezone.utc)
        created = coupon_service.create_coupon(
            CouponCreate(
                code="  summer1000 ",
                discount_value=1000,
                valid_from=now,
                valid_until=now + timedelta(days=7),
                max_uses=50,
            )
        )

        assert created.code == "SUMMER1000"
        assert created.discount_type == DiscountType.POINTS
        assert created.current_uses == 0

    def test_duplicate_code_is_rejected(self, coupon_service, make_coupon):
        make_coupon("DUP")
        now = datetime.now(timezone.utc)
        with pytest.raises(ValidationError):
            coupon_service.create_coupon(
                CouponCreate(
                    code="dup",
                    discount_value=10,
                    valid_from=now,
                    valid_until=now + timedelta(days=1),
                )
            )

    def test_deactivated_coupon_cannot_be_redeemed(self, coupon_service, make_coupon):
        coupon = make_coupon("PAUSE")

        updated = coupon_service.set_active(coupon.id, False)

        assert updated.is_active is False
        with pytest.raises(CouponIneligibleError) as exc_info:
            coupon_service.redeem("PAUSE", "user-1")
        assert exc_info.value.reason == "inactive"
        with pytest.raises(CouponIneligibleError) as exc_info:
            coupon_service.validate("PAUSE", "user-1")
        assert exc_info.value.reason == "inactive"

        coupon_service.set_active(coupon.id, True)
        assert coupon_service.redeem("PAUSE", "user-1").points_granted == 500

    def test_update_keeps_current_uses(
        self, coupon_service, make_coupon, session_factory, settings
    ):
        coupon = make_coupon("EDIT", max_uses=5)
        # 다른 세션에서 사용 처리 -> coupon_service 세션의 인스턴스는 current_uses 0
        for user_id in ("user-1", "user-2"):
            with session_factory() as session:
                CouponService(session, settings).redeem("EDIT", user_id)

        now = datetime.now(timezone.utc)
        updated = coupon_service.update_coupon(
            coupon.id,
            CouponUpdate(
                code="edit",
                description="edited",
                discount_value=300,
                valid_from=now - timedelta(days=1),
                valid_until=now + timedelta(days=3),
                max_uses=10,
            ),
        )

        assert updated.discount_value == 300
        assert updated.max_uses == 10
        assert updated.current_uses == 2
        assert _current_uses(session_factory, "EDIT") == 2
        assert coupon_service.redeem("EDIT", "user-3").points_granted == 300

    def test_update_rejects_code_of_another_coupon(self, coupon_service, make_coupon):
        make_coupon("TAKEN")
        other = make_coupon("OTHER")
        now = datetime.now(timezone.utc)

        with pytest.raises(ValidationError):
            coupon_service.update_coupon(
                other.id,
                CouponUpdate(
                    code="taken",
                    discount_value=10,
                    valid_from=now,
                    valid_until=now + timedelta(days=1),
                ),
            )

    def test_unknown_coupon_id(self, coupon_service):
        with pytest.raises(NotFoundError) as exc_info:
            coupon_service.set_active(999, False)

        assert exc_info.value.status_code == 404
        assert exc_info.value.error_code == "COUPON_001"


class TestCouponConcurrency:
    def test_concurrent_redemptions_by_same_user_commit_once(
        self, make_coupon, session_factory, settings
    ):
        """같은 사용자의 동시 사용 N건 -> 사용 기록 1건, 지급 거래 1건, current_uses 1"""
        make_coupon("WELCOME500", max_uses=100, max_uses_per_user=1)

        def redeem_once(_):
            with session_factory() as session:
                try:
                    CouponService(session, settings).redeem("WELCOME500", "user-1")
                    return "ok"
                except AlreadyRedeemedError:
                    return "already"

        with ThreadPoolExecutor(max_workers=10) as executor:
            outcomes = list(executor.map(redeem_once, range(10)))

        assert outcomes.count("ok") == 1
        assert outcomes.count("already") == 9

        with session_factory() as session:
            assert session.query(CouponRedemption).count() == 1
            assert (
                session.query(PointTransaction)
                .filter_by(kind=TransactionKind.COUPON_GRANT.value)
                .count()
                == 1
            )
            assert LedgerService(session, settings).get_balance("user-1").balance == 500
        assert _current_uses(session_factory, "WELCOME500") == 1

    def test_concurrent_redemptions_respect_global_cap(
        self, make_coupon, session_factory, settings
    ):
        make_coupon("FLASH", max_uses=3)

        def redeem_as(i):
            with session_factory() as session:
                try:
                    CouponService(session, settings).redeem("FLASH", f"user-{i}")
                    return "ok"
                except CouponIneligibleError:
                    return "exhausted"

        with ThreadPoolExecutor(max_workers=8) as executor:
            outcomes = list(executor.map(redeem_as, range(8)))

        assert outcomes.count("ok") == 3
        assert _current_uses(session_factory, "FLASH") == 3
