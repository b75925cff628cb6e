"""
포인트 리포지토리 - 잔액/원장 테이블 접근

핵심 특징:
- apply_delta는 잔액 갱신과 원장 기록을 같은 트랜잭션에 올리기만 하고 커밋하지 않음
- 잔액 갱신은 version 컬럼 compare-and-swap: 읽은 시점 이후 다른 트랜잭션이
  잔액을 바꿨다면 0행이 갱신되고 OptimisticConflict가 발생
- 잔액 부족 시 아무것도 쓰지 않고 InsufficientBalanceError
"""

from typing import List, Optional, Tuple

from sqlalchemy import desc, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pointcore.core.exceptions import InsufficientBalanceError
from pointcore.database.unit_of_work import OptimisticConflict
from pointcore.models.base import utc_now
from pointcore.models.points import AccountBalance, PointTransaction, TransactionKind
from pointcore.repositories.base import BaseRepository
from pointcore.schemas.points import TransactionEntry


class PointsRepository(BaseRepository[PointTransaction, TransactionEntry]):
    def __init__(self, db: Session):
        super().__init__(PointTransaction, TransactionEntry, db)

    def get_balance(self, user_id: str) -> int:
        """저장된 잔액 조회 (계정이 없으면 0)"""
        balance = self.db.execute(
            select(AccountBalance.balance).where(AccountBalance.user_id == user_id)
        ).scalar()
        return balance or 0

    def find_by_ref_id(self, ref_id: str) -> Optional[PointTransaction]:
        return self.get_by_field("ref_id", ref_id)

    def apply_delta(
        self,
        user_id: str,
        delta: int,
        kind: TransactionKind,
        description: str,
        ref_id: Optional[str] = None,
    ) -> Tuple[PointTransaction, int]:
        """
        잔액 변경 + 원장 기록 (커밋은 호출자 몫)

        Args:
            user_id: 사용자 ID
            delta: 부호 있는 변동량
            kind: 거래 유형
            description: 거래 사유
            ref_id: 멱등성 키

        Returns:
            (기록된 거래, 거래 후 잔액)

        Raises:
            InsufficientBalanceError: 거래 후 잔액이 음수가 되는 경우
            OptimisticConflict: 동시 갱신 감지 (작업 단위 재시도 필요)
        """
        row = self.db.execute(
            select(AccountBalance.balance, AccountBalance.version).where(
                AccountBalance.user_id == user_id
            )
        ).first()

        if row is None:
            balance_before = 0
            balance_after = delta
            if balance_after < 0:
                raise InsufficientBalanceError(required=-delta, available=0)
            try:
                # 첫 충전 시 계정 생성 - 동시 생성은 PK 충돌로 감지
                self.db.add(
                    AccountBalance(user_id=user_id, balance=balance_after, version=1)
                )
                self.db.flush()
            except IntegrityError as e:
                raise OptimisticConflict(f"account {user_id} created concurrently") from e
        else:
            balance_before, version = row.balance, row.version
            balance_after = balance_before + delta
            if balance_after < 0:
                raise InsufficientBalanceError(
                    required=-delta, available=balance_before
                )
            result = self.db.execute(
                update(AccountBalance)
                .where(
                    AccountBalance.user_id == user_id,
                    AccountBalance.version == version,
                )
                .values(
                    balance=balance_after,
                    version=version + 1,
                    updated_at=utc_now(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise OptimisticConflict(f"balance of {user_id} changed concurrently")

        transaction = PointTransaction(
            user_id=user_id,
            kind=kind.value,
            amount=delta,
            balance_before=balance_before,
            balance_after=balance_after,
            description=description,
            ref_id=ref_id,
        )
        self.db.add(transaction)
        try:
            self.db.flush()
        except IntegrityError as e:
            # 같은 ref_id가 동시에 기록됨 - 재시도 시 기존 거래를 반환
            raise OptimisticConflict(f"ref_id {ref_id} recorded concurrently") from e

        return transaction, balance_after

    def list_transactions(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
        kind: Optional[TransactionKind] = None,
    ) -> Tuple[List[PointTransaction], int]:
        """사용자 원장 조회 (최신순, 페이징)"""
        query = self.db.query(self.model_class).filter(
            self.model_class.user_id == user_id
        )
        if kind is not None:
            query = query.filter(self.model_class.kind == kind.value)

        total_count = query.count()
        entries = (
            query.order_by(desc(self.model_class.id)).limit(limit).offset(offset).all()
        )
        return entries, total_count

    def sum_amounts(self, user_id: str) -> Tuple[int, int]:
        """(Σ amount, 항목 수) - 정합성 검증용"""
        total, entry_count = self.db.execute(
            select(
                func.coalesce(func.sum(PointTransaction.amount), 0),
                func.count(PointTransaction.id),
            ).where(PointTransaction.user_id == user_id)
        ).one()
        return int(total), int(entry_count)

    def has_kind(self, user_id: str, kind: TransactionKind) -> bool:
        return (
            self.db.query(self.model_class.id)
            .filter(
                self.model_class.user_id == user_id,
                self.model_class.kind == kind.value,
            )
            .first()
            is not None
        )
