"""
일일 사용 한도 서비스 - (사용자, 상대방) 당 서비스 로컬 하루 N회

날짜가 키에 포함되므로 자정 리셋 작업 없이 다음 날에는 새 카운터가 사용됩니다.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session

from pointcore.config import Settings, settings as default_settings
from pointcore.core.exceptions import DailyQuotaExceededError, ValidationError
from pointcore.database.unit_of_work import run_atomic, store_errors
from pointcore.repositories.quota_repository import DailyQuotaRepository
from pointcore.schemas.quota import QuotaDecision, QuotaResetResponse
from pointcore.utils.timezone_utils import local_today, seconds_until_next_day

logger = logging.getLogger(__name__)


class DailyQuotaService:
    def __init__(
        self,
        db: Session,
        settings: Settings = default_settings,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.settings = settings
        self.limit = settings.DAILY_QUOTA_LIMIT
        self.zone = settings.QUOTA_TIMEZONE
        self.quota_repo = DailyQuotaRepository(db)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def today(self) -> date:
        """서비스 로컬 타임존 기준 오늘"""
        return local_today(self.zone, self._clock())

    def check(
        self, user_id: str, counterparty_id: str, day: Optional[date] = None
    ) -> QuotaDecision:
        """한도 조회 (읽기 전용)"""
        self._validate(user_id, counterparty_id)
        day = day or self.today()
        with store_errors(self.db, "quota.check"):
            current = self.quota_repo.get_count(user_id, counterparty_id, day)
        return self._decision(current, day)

    def record(
        self, user_id: str, counterparty_id: str, day: Optional[date] = None
    ) -> QuotaDecision:
        """사용 1회 기록 (한도 검사 없이 증가, 행이 없으면 생성)"""
        self._validate(user_id, counterparty_id)
        day = day or self.today()

        def unit() -> int:
            self.quota_repo.increment(user_id, counterparty_id, day)
            return self.quota_repo.get_count(user_id, counterparty_id, day)

        current = run_atomic(
            self.db,
            unit,
            operation="quota.record",
            max_retries=self.settings.LEDGER_MAX_RETRIES,
            backoff_ms=self.settings.LEDGER_RETRY_BACKOFF_MS,
        )
        logger.info(
            f"Quota recorded for {user_id} -> {counterparty_id} on {day}: {current}/{self.limit}"
        )
        return self._decision(current, day)

    def consume(
        self, user_id: str, counterparty_id: str, day: Optional[date] = None
    ) -> QuotaDecision:
        """
        한도 검사와 기록을 하나의 조건부 UPDATE로 수행

        Raises:
            DailyQuotaExceededError: 오늘 한도 도달 (retry_after = 로컬 자정까지 남은 초)
        """
        self._validate(user_id, counterparty_id)
        day = day or self.today()

        def unit():
            allowed = self.quota_repo.increment_if_below(
                user_id, counterparty_id, day, self.limit
            )
            return allowed, self.quota_repo.get_count(user_id, counterparty_id, day)

        allowed, current = run_atomic(
            self.db,
            unit,
            operation="quota.consume",
            max_retries=self.settings.LEDGER_MAX_RETRIES,
            backoff_ms=self.settings.LEDGER_RETRY_BACKOFF_MS,
        )

        if not allowed:
            retry_after = seconds_until_next_day(self.zone, self._clock())
            logger.info(
                f"Daily quota reached for {user_id} -> {counterparty_id} on {day} "
                f"({current}/{self.limit})"
            )
            raise DailyQuotaExceededError(
                retry_after=retry_after, limit=self.limit, current=current
            )

        # 방금 수행한 사용이 허용되었음을 반환 (remaining은 남은 횟수)
        return self._decision(current, day, allowed=True)

    def reset(
        self,
        user_id: str,
        counterparty_id: Optional[str] = None,
        day: Optional[date] = None,
    ) -> QuotaResetResponse:
        """관리자 리셋 - 해당 날짜의 카운터 삭제 (상대방 지정 시 그 상대방만)"""
        if not isinstance(user_id, str) or not user_id.strip():
            raise ValidationError("user_id is required")
        day = day or self.today()

        deleted = run_atomic(
            self.db,
            lambda: self.quota_repo.delete_for_day(user_id, day, counterparty_id),
            operation="quota.reset",
            max_retries=0,
            backoff_ms=0,
        )
        scope = counterparty_id or "all counterparties"
        logger.info(f"Quota reset for {user_id} ({scope}) on {day}: {deleted} rows")
        return QuotaResetResponse(user_id=user_id, day=day, deleted=deleted)

    def purge_expired(self, retention_days: Optional[int] = None) -> int:
        """보관 기간이 지난 카운터 삭제"""
        retention = (
            self.settings.QUOTA_RETENTION_DAYS if retention_days is None else retention_days
        )
        if retention < 0:
            raise ValidationError("retention_days must not be negative")
        cutoff = self.today() - timedelta(days=retention)

        deleted = run_atomic(
            self.db,
            lambda: self.quota_repo.delete_before(cutoff),
            operation="quota.purge",
            max_retries=0,
            backoff_ms=0,
        )
        if deleted:
            logger.info(f"Purged {deleted} daily quota rows older than {cutoff}")
        return deleted

    def _decision(
        self, current: int, day: date, allowed: Optional[bool] = None
    ) -> QuotaDecision:
        return QuotaDecision(
            allowed=current < self.limit if allowed is None else allowed,
            remaining=max(0, self.limit - current),
            current=current,
            limit=self.limit,
            day=day,
        )

    @staticmethod
    def _validate(user_id: str, counterparty_id: str) -> None:
        if not isinstance(user_id, str) or not user_id.strip():
            raise ValidationError("user_id is required")
        if not isinstance(counterparty_id, str) or not counterparty_id.strip():
            raise ValidationError("counterparty_id is required")
