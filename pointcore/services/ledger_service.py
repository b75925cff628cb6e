"""
원장 서비스 - 모든 포인트 잔액 변경의 단일 진입점

핵심 보장:
1. 잔액 갱신과 원장 기록은 하나의 트랜잭션으로 커밋되거나 둘 다 취소됨
2. 같은 사용자에 대한 동시 차감의 합이 잔액을 넘으면 둘 다 성공할 수 없음
   (version compare-and-swap + 제한된 재시도)
3. ref_id가 주어지면 같은 요청의 재전송은 기존 거래를 그대로 반환 (멱등성)
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from pointcore.config import Settings, settings as default_settings
from pointcore.core.exceptions import ValidationError
from pointcore.database.unit_of_work import run_atomic, store_errors
from pointcore.models.points import (
    CREDIT_KINDS,
    DEBIT_KINDS,
    PointTransaction,
    TransactionKind,
)
from pointcore.repositories.points_repository import PointsRepository
from pointcore.schemas.points import (
    BalanceResponse,
    IntegrityCheckResponse,
    LedgerHistoryResponse,
    LedgerResult,
    TransactionEntry,
)

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class LedgerService:
    """포인트 잔액과 거래 원장을 관리하는 서비스"""

    def __init__(self, db: Session, settings: Settings = default_settings):
        self.db = db
        self.settings = settings
        self.points_repo = PointsRepository(db)

    # ------------------------------------------------------------------
    # 잔액 변경
    # ------------------------------------------------------------------

    def credit(
        self,
        user_id: str,
        amount: int,
        kind: TransactionKind = TransactionKind.PURCHASE,
        description: str = "",
        ref_id: Optional[str] = None,
    ) -> LedgerResult:
        """포인트 충전

        Args:
            user_id: 사용자 ID
            amount: 충전할 포인트 (양수)
            kind: purchase | refund | admin_adjustment | coupon_grant
            description: 거래 사유
            ref_id: 멱등성 키 (결제 세션 ID 등)

        Returns:
            LedgerResult: 기록된 거래와 새 잔액

        Raises:
            ValidationError: 잘못된 입력
            StoreUnavailableError: 저장소 장애 또는 재시도 소진
        """
        self._validate(user_id, amount, kind, CREDIT_KINDS)
        return self._mutate(user_id, amount, kind, description, ref_id)

    def debit(
        self,
        user_id: str,
        amount: int,
        kind: TransactionKind = TransactionKind.CONSUMPTION,
        description: str = "",
        ref_id: Optional[str] = None,
    ) -> LedgerResult:
        """포인트 차감

        Args:
            user_id: 사용자 ID
            amount: 차감할 포인트 (양수)
            kind: consumption | admin_adjustment
            description: 거래 사유
            ref_id: 멱등성 키

        Returns:
            LedgerResult: 기록된 거래와 새 잔액

        Raises:
            InsufficientBalanceError: 잔액 부족 (아무것도 변경되지 않음)
            ValidationError: 잘못된 입력
            StoreUnavailableError: 저장소 장애 또는 재시도 소진
        """
        self._validate(user_id, amount, kind, DEBIT_KINDS)
        return self._mutate(user_id, -amount, kind, description, ref_id)

    def adjust(self, user_id: str, amount: int, description: str) -> LedgerResult:
        """관리자 포인트 조정 (양수: 추가, 음수: 차감)"""
        if isinstance(amount, bool) or not isinstance(amount, int) or amount == 0:
            raise ValidationError("Adjustment amount must be a non-zero integer")

        admin_description = f"Admin adjustment: {description}"
        if amount > 0:
            return self.credit(
                user_id, amount, TransactionKind.ADMIN_ADJUSTMENT, admin_description
            )
        return self.debit(
            user_id, -amount, TransactionKind.ADMIN_ADJUSTMENT, admin_description
        )

    def apply_in_unit(
        self,
        user_id: str,
        delta: int,
        kind: TransactionKind,
        description: str,
        ref_id: Optional[str] = None,
    ) -> Tuple[PointTransaction, int]:
        """호출자의 작업 단위 안에서 잔액 변경 (커밋하지 않음)

        쿠폰 지급처럼 다른 쓰기와 함께 원자적으로 커밋되어야 하는 경우에 사용합니다.
        """
        return self.points_repo.apply_delta(user_id, delta, kind, description, ref_id)

    def _mutate(
        self,
        user_id: str,
        delta: int,
        kind: TransactionKind,
        description: str,
        ref_id: Optional[str],
    ) -> LedgerResult:
        def unit() -> LedgerResult:
            if ref_id is not None:
                existing = self.points_repo.find_by_ref_id(ref_id)
                if existing is not None:
                    return self._replay(existing, user_id, delta)

            transaction, balance = self.points_repo.apply_delta(
                user_id, delta, kind, description, ref_id
            )
            return LedgerResult(
                transaction=TransactionEntry.model_validate(transaction),
                balance=balance,
            )

        try:
            result = run_atomic(
                self.db,
                unit,
                operation=f"ledger.{kind.value}",
                max_retries=self.settings.LEDGER_MAX_RETRIES,
                backoff_ms=self.settings.LEDGER_RETRY_BACKOFF_MS,
            )
        except Exception as e:
            logger.warning(
                f"Ledger {kind.value} of {delta} for user {user_id} rejected: {str(e)}"
            )
            raise

        if not result.replayed:
            logger.info(
                f"Ledger {kind.value} {delta:+d} for user {user_id}, balance {result.balance}"
            )
        return result

    def _replay(
        self, existing: PointTransaction, user_id: str, delta: int
    ) -> LedgerResult:
        if existing.user_id != user_id or existing.amount != delta:
            raise ValidationError(
                "ref_id already used for a different transaction",
                details={"ref_id": existing.ref_id},
            )
        logger.info(f"Ledger ref_id {existing.ref_id} already processed (idempotent)")
        return LedgerResult(
            transaction=TransactionEntry.model_validate(existing),
            balance=self.points_repo.get_balance(user_id),
            replayed=True,
        )

    @staticmethod
    def _validate(user_id: str, amount: int, kind: TransactionKind, allowed) -> None:
        if not isinstance(user_id, str) or not user_id.strip():
            raise ValidationError("user_id is required")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError(
                "Amount must be a positive integer", details={"amount": amount}
            )
        if kind not in allowed:
            raise ValidationError(
                f"Transaction kind '{kind.value}' is not allowed here",
                details={"kind": kind.value},
            )

    # ------------------------------------------------------------------
    # 조회
    # ------------------------------------------------------------------

    def get_balance(self, user_id: str) -> BalanceResponse:
        with store_errors(self.db, "ledger.balance"):
            balance = self.points_repo.get_balance(user_id)
        return BalanceResponse(user_id=user_id, balance=balance)

    def get_history(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
        kind: Optional[TransactionKind] = None,
    ) -> LedgerHistoryResponse:
        """사용자 포인트 거래 내역 조회 (최신순)"""
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = max(0, offset)

        with store_errors(self.db, "ledger.history"):
            entries, total_count = self.points_repo.list_transactions(
                user_id, limit=limit, offset=offset, kind=kind
            )
            balance = self.points_repo.get_balance(user_id)

        return LedgerHistoryResponse(
            balance=balance,
            entries=self.points_repo._to_schemas(entries),
            total_count=total_count,
            has_next=offset + limit < total_count,
        )

    def has_purchased(self, user_id: str) -> bool:
        """결제 충전 이력 존재 여부 (첫 구매 판별용)"""
        with store_errors(self.db, "ledger.has_purchased"):
            return self.points_repo.has_kind(user_id, TransactionKind.PURCHASE)

    def verify_integrity(self, user_id: str) -> IntegrityCheckResponse:
        """
        원장 합계와 저장된 잔액 비교

        원장이 진실의 원천이고 잔액 컬럼은 캐시된 프로젝션이므로
        Σ amount == balance 가 항상 성립해야 합니다.
        """
        with store_errors(self.db, "ledger.verify_integrity"):
            calculated, entry_count = self.points_repo.sum_amounts(user_id)
            recorded = self.points_repo.get_balance(user_id)

        status = "OK" if calculated == recorded else "MISMATCH"
        if status != "OK":
            logger.error(
                f"Ledger integrity mismatch for user {user_id}: "
                f"calculated={calculated}, recorded={recorded}"
            )

        return IntegrityCheckResponse(
            status=status,
            user_id=user_id,
            calculated_balance=calculated,
            recorded_balance=recorded,
            entry_count=entry_count,
            verified_at=datetime.now(timezone.utc),
        )
