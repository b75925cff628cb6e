"""
포인트 원장 데이터 모델

- account_balances: 사용자별 현재 잔액 (원장으로부터 파생된 캐시 프로젝션)
- point_transactions: 모든 잔액 변동을 기록하는 추가 전용(Append-only) 원장

잔액 변경은 반드시 두 테이블을 하나의 트랜잭션 안에서 함께 갱신합니다.
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from pointcore.models.base import Base, BaseModel, BigIntPK, utc_now


class TransactionKind(str, enum.Enum):
    """원장 거래 유형"""

    PURCHASE = "purchase"  # 결제 승인에 따른 충전
    CONSUMPTION = "consumption"  # 유료 기능 사용
    REFUND = "refund"
    ADMIN_ADJUSTMENT = "admin_adjustment"
    COUPON_GRANT = "coupon_grant"


CREDIT_KINDS = frozenset(
    {
        TransactionKind.PURCHASE,
        TransactionKind.REFUND,
        TransactionKind.ADMIN_ADJUSTMENT,
        TransactionKind.COUPON_GRANT,
    }
)
DEBIT_KINDS = frozenset(
    {TransactionKind.CONSUMPTION, TransactionKind.ADMIN_ADJUSTMENT}
)


class AccountBalance(BaseModel):
    """
    사용자 잔액 테이블

    - 첫 충전 시 생성됨
    - version 컬럼으로 compare-and-swap 갱신 (낙관적 동시성 제어)
    - CHECK 제약으로 음수 잔액을 저장소 레벨에서도 차단
    """

    __tablename__ = "account_balances"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_account_balances_non_negative"),
    )

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class PointTransaction(Base):
    """
    포인트 거래 원장 - 불변(Immutable) 기록

    balance = Σ amount 가 항상 성립해야 하며, 한번 기록된 행은 수정되지 않습니다.
    ref_id는 외부 참조(결제 세션 등)에 대한 멱등성 키입니다.
    """

    __tablename__ = "point_transactions"
    __table_args__ = (
        Index("ix_point_transactions_user_created", "user_id", "id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    # 부호 있는 변동량 - 양수면 증가, 음수면 감소
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_before: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    ref_id: Mapped[Optional[str]] = mapped_column(
        String(128), nullable=True, unique=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
