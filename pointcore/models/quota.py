from datetime import date

from sqlalchemy import Date, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pointcore.models.base import BaseModel, BigIntPK


class DailyQuota(BaseModel):
    """
    (사용자, 상대방, 날짜) 단위 일일 사용 횟수

    날짜가 키에 포함되므로 새 날짜가 되면 자동으로 초기화된 것과 같습니다.
    오래된 행은 보존 기간 정리 작업으로만 삭제합니다.
    """

    __tablename__ = "daily_quota"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "counterparty_id", "date", name="uq_daily_quota_user_cp_date"
        ),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    counterparty_id: Mapped[str] = mapped_column(String(64), nullable=False)
    quota_date: Mapped[date] = mapped_column("date", Date, nullable=False, index=True)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
