"""
포인트 API 라우터

사용자용 엔드포인트:
- GET /points/balance: 내 포인트 잔액 조회
- GET /points/history: 내 포인트 거래 내역
- POST /points/consume: 포인트 사용
- GET /points/integrity: 내 포인트 정합성 검증
- GET /points/first-purchase: 첫 구매 여부

관리자용 엔드포인트 (X-Admin-Token 필요):
- POST /points/admin/credit: 포인트 충전 (결제 승인, 환불 등)
- POST /points/admin/adjust: 포인트 조정
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from pointcore.deps import get_current_user_id, get_ledger_service, require_admin
from pointcore.models.points import TransactionKind
from pointcore.schemas.points import (
    AdjustmentRequest,
    BalanceResponse,
    ConsumeRequest,
    CreditRequest,
    FirstPurchaseResponse,
    IntegrityCheckResponse,
    LedgerHistoryResponse,
    LedgerResult,
)
from pointcore.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/points", tags=["points"])


@router.get("/balance", response_model=BalanceResponse)
def get_my_balance(
    user_id: str = Depends(get_current_user_id),
    ledger: LedgerService = Depends(get_ledger_service),
) -> BalanceResponse:
    return ledger.get_balance(user_id)


@router.get("/history", response_model=LedgerHistoryResponse)
def get_my_history(
    limit: int = Query(50, ge=1, le=100, description="페이지 크기"),
    offset: int = Query(0, ge=0, description="오프셋"),
    kind: Optional[TransactionKind] = Query(None, description="거래 유형 필터"),
    user_id: str = Depends(get_current_user_id),
    ledger: LedgerService = Depends(get_ledger_service),
) -> LedgerHistoryResponse:
    """
    내 포인트 거래 내역 조회 (최신순)

    사용 예시:
        GET /points/history?limit=20&offset=0
        GET /points/history?kind=coupon_grant
    """
    return ledger.get_history(user_id, limit=limit, offset=offset, kind=kind)


@router.post("/consume", response_model=LedgerResult)
def consume_points(
    request: ConsumeRequest,
    user_id: str = Depends(get_current_user_id),
    ledger: LedgerService = Depends(get_ledger_service),
) -> LedgerResult:
    """
    포인트 사용 - 잔액 부족 시 400 (BALANCE_001), 잔액은 변경되지 않음
    """
    return ledger.debit(user_id, request.amount, description=request.description)


@router.get("/integrity", response_model=IntegrityCheckResponse)
def verify_my_integrity(
    user_id: str = Depends(get_current_user_id),
    ledger: LedgerService = Depends(get_ledger_service),
) -> IntegrityCheckResponse:
    return ledger.verify_integrity(user_id)


@router.get("/first-purchase", response_model=FirstPurchaseResponse)
def check_first_purchase(
    user_id: str = Depends(get_current_user_id),
    ledger: LedgerService = Depends(get_ledger_service),
) -> FirstPurchaseResponse:
    return FirstPurchaseResponse(is_first_purchase=not ledger.has_purchased(user_id))


# ============================================================================
# 관리자 엔드포인트
# ============================================================================


@router.post(
    "/admin/credit",
    response_model=LedgerResult,
    dependencies=[Depends(require_admin)],
)
def admin_credit(
    request: CreditRequest,
    ledger: LedgerService = Depends(get_ledger_service),
) -> LedgerResult:
    """
    포인트 충전 - 결제 승인 결과 반영 등

    같은 ref_id로 다시 호출하면 기존 거래를 그대로 반환합니다 (replayed=true).
    """
    logger.info(
        f"Admin credit of {request.amount} ({request.kind.value}) for user {request.user_id}"
    )
    return ledger.credit(
        request.user_id,
        request.amount,
        kind=request.kind,
        description=request.description,
        ref_id=request.ref_id,
    )


@router.post(
    "/admin/adjust",
    response_model=LedgerResult,
    dependencies=[Depends(require_admin)],
)
def admin_adjust(
    request: AdjustmentRequest,
    ledger: LedgerService = Depends(get_ledger_service),
) -> LedgerResult:
    """포인트 조정 (양수: 추가, 음수: 차감)"""
    logger.info(f"Admin adjustment of {request.amount} for user {request.user_id}")
    return ledger.adjust(request.user_id, request.amount, request.description)
