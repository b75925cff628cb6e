from datetime import date
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pointcore.database.unit_of_work import OptimisticConflict
from pointcore.models.base import utc_now
from pointcore.models.quota import DailyQuota
from pointcore.repositories.base import BaseRepository
from pointcore.schemas.quota import DailyQuotaEntry


class DailyQuotaRepository(BaseRepository[DailyQuota, DailyQuotaEntry]):
    """일일 사용 횟수 리포지토리 - 모든 증가는 단일 UPDATE 문으로 원자적으로 처리"""

    def __init__(self, db: Session):
        super().__init__(DailyQuota, DailyQuotaEntry, db)

    def _key_filter(self, user_id: str, counterparty_id: str, day: date):
        return (
            DailyQuota.user_id == user_id,
            DailyQuota.counterparty_id == counterparty_id,
            DailyQuota.quota_date == day,
        )

    def get_count(self, user_id: str, counterparty_id: str, day: date) -> int:
        count = self.db.execute(
            select(DailyQuota.count).where(*self._key_filter(user_id, counterparty_id, day))
        ).scalar()
        return count or 0

    def _insert_first(self, user_id: str, counterparty_id: str, day: date) -> None:
        self.db.add(
            DailyQuota(
                user_id=user_id,
                counterparty_id=counterparty_id,
                quota_date=day,
                count=1,
            )
        )
        try:
            self.db.flush()
        except IntegrityError as e:
            # 같은 키의 행이 동시에 생성됨 - 재시도하면 UPDATE 경로로 진행
            raise OptimisticConflict(
                f"quota row {user_id}/{counterparty_id}/{day} created concurrently"
            ) from e

    def increment(self, user_id: str, counterparty_id: str, day: date) -> None:
        """카운터 +1 (행이 없으면 1로 생성)"""
        result = self.db.execute(
            update(DailyQuota)
            .where(*self._key_filter(user_id, counterparty_id, day))
            .values(count=DailyQuota.count + 1, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self._insert_first(user_id, counterparty_id, day)

    def increment_if_below(
        self, user_id: str, counterparty_id: str, day: date, limit: int
    ) -> bool:
        """
        한도 미만일 때만 카운터 +1 (조건부 UPDATE)

        Returns:
            bool: 증가 성공 여부 (False면 한도 도달)
        """
        if limit <= 0:
            return False

        result = self.db.execute(
            update(DailyQuota)
            .where(
                *self._key_filter(user_id, counterparty_id, day),
                DailyQuota.count < limit,
            )
            .values(count=DailyQuota.count + 1, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return True

        exists = self.db.execute(
            select(DailyQuota.id).where(*self._key_filter(user_id, counterparty_id, day))
        ).first()
        if exists is not None:
            return False

        self._insert_first(user_id, counterparty_id, day)
        return True

    def delete_for_day(
        self, user_id: str, day: date, counterparty_id: Optional[str] = None
    ) -> int:
        stmt = delete(DailyQuota).where(
            DailyQuota.user_id == user_id, DailyQuota.quota_date == day
        )
        if counterparty_id is not None:
            stmt = stmt.where(DailyQuota.counterparty_id == counterparty_id)
        result = self.db.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount

    def delete_before(self, cutoff: date) -> int:
        result = self.db.execute(
            delete(DailyQuota)
            .where(DailyQuota.quota_date < cutoff)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
