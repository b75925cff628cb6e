from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta, timezone

import pytest

from pointcore.core.exceptions import DailyQuotaExceededError, ValidationError
from pointcore.models.quota import DailyQuota
from pointcore.services.daily_quota_service import DailyQuotaService
from pointcore.utils.timezone_utils import local_today, seconds_until_next_day

NOW = datetime(2024, 3, 15, 22, 30, tzinfo=timezone.utc)
TODAY = date(2024, 3, 15)


@pytest.fixture
def quota_service(db, settings):
    return DailyQuotaService(db, settings, clock=lambda: NOW)


class TestDailyQuota:
    """(사용자, 상대방, 날짜) 단위 일일 한도 테스트"""

    def test_check_is_read_only(self, quota_service, db):
        decision = quota_service.check("user-1", "partner-1")

        assert decision.allowed is True
        assert decision.remaining == 3
        assert decision.current == 0
        assert decision.day == TODAY
        assert db.query(DailyQuota).count() == 0

    def test_record_then_check_blocks_after_limit(self, quota_service):
        for _ in range(3):
            quota_service.record("user-1", "partner-1")

        blocked = quota_service.check("user-1", "partner-1")
        assert blocked.allowed is False
        assert blocked.remaining == 0
        assert blocked.current == 3

        assert quota_service.check("user-1", "partner-2").allowed is True
        assert quota_service.check("user-1", "partner-1", day=TODAY + timedelta(days=1)).allowed is True

    def test_consume_raises_with_time_until_local_midnight(self, quota_service):
        decisions = [quota_service.consume("user-1", "partner-1") for _ in range(3)]
        assert [d.remaining for d in decisions] == [2, 1, 0]
        assert all(d.allowed for d in decisions)

        with pytest.raises(DailyQuotaExceededError) as exc_info:
            quota_service.consume("user-1", "partner-1")

        # 22:30 UTC -> 자정까지 1시간 30분
        assert exc_info.value.retry_after == 90 * 60
        assert exc_info.value.headers["Retry-After"] == str(90 * 60)
        assert quota_service.check("user-1", "partner-1").current == 3

    def test_reset_restores_quota_for_one_counterparty(self, quota_service):
        for _ in range(3):
            quota_service.record("user-1", "partner-1")
        quota_service.record("user-1", "partner-2")

        result = quota_service.reset("user-1", "partner-1")

        assert result.deleted == 1
        assert quota_service.check("user-1", "partner-1").remaining == 3
        assert quota_service.check("user-1", "partner-2").current == 1

    def test_reset_all_counterparties(self, quota_service):
        quota_service.record("user-1", "partner-1")
        quota_service.record("user-1", "partner-2")
        quota_service.record("user-2", "partner-1")

        assert quota_service.reset("user-1").deleted == 2
        assert quota_service.check("user-2", "partner-1").current == 1

    def test_purge_expired_keeps_recent_rows(self, quota_service, db):
        quota_service.record("user-1", "partner-1", day=TODAY - timedelta(days=40))
        quota_service.record("user-1", "partner-1", day=TODAY - timedelta(days=5))
        quota_service.record("user-1", "partner-1")

        assert quota_service.purge_expired() == 1
        assert db.query(DailyQuota).count() == 2
        assert quota_service.purge_expired(retention_days=0) == 1

    def test_requires_identifiers(self, quota_service):
        with pytest.raises(ValidationError):
            quota_service.check("", "partner-1")
        with pytest.raises(ValidationError):
            quota_service.consume("user-1", " ")


class TestServiceLocalCalendar:
    def test_today_follows_configured_zone(self, db, settings):
        seoul = settings.model_copy(update={"QUOTA_TIMEZONE": "Asia/Seoul"})
        service = DailyQuotaService(db, seoul, clock=lambda: NOW)

        # 22:30 UTC == 다음날 07:30 KST
        assert service.today() == TODAY + timedelta(days=1)

    def test_seconds_until_next_day(self):
        assert seconds_until_next_day("UTC", NOW) == 5400
        assert seconds_until_next_day("Asia/Seoul", NOW) == (16 * 60 + 30) * 60
        assert local_today("America/New_York", NOW) == TODAY


class TestQuotaConcurrency:
    def test_concurrent_consume_allows_exactly_limit(self, session_factory, settings):
        """한도 3에서 같은 (사용자, 상대방)으로 20번 동시 사용 -> 정확히 3번만 성공"""

        def consume_once(_):
            with session_factory() as session:
                try:
                    DailyQuotaService(session, settings, clock=lambda: NOW).consume(
                        "user-1", "partner-1"
                    )
                    return "ok"
                except DailyQuotaExceededError:
                    return "exceeded"

        with ThreadPoolExecutor(max_workers=20) as executor:
            outcomes = list(executor.map(consume_once, range(20)))

        assert outcomes.count("ok") == 3
        assert outcomes.count("exceeded") == 17
        with session_factory() as session:
            service = DailyQuotaService(session, settings, clock=lambda: NOW)
            assert service.check("user-1", "partner-1").current == 3

    def test_concurrent_record_loses_no_increment(self, session_factory, settings):
        def record_once(_):
            with session_factory() as session:
                DailyQuotaService(session, settings, clock=lambda: NOW).record(
                    "user-1", "partner-1"
                )

        with ThreadPoolExecutor(max_workers=10) as executor:
            list(executor.map(record_once, range(15)))

        with session_factory() as session:
            service = DailyQuotaService(session, settings, clock=lambda: NOW)
            assert service.check("user-1", "partner-1").current == 15
            assert session.query(DailyQuota).count() == 1
