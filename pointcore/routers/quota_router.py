from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from pointcore.deps import get_current_user_id, get_daily_quota_service, require_admin
from pointcore.schemas.quota import QuotaDecision, QuotaResetResponse
from pointcore.services.daily_quota_service import DailyQuotaService

router = APIRouter(prefix="/quota", tags=["quota"])


@router.get("/{counterparty_id}", response_model=QuotaDecision)
def check_quota(
    counterparty_id: str = Path(..., min_length=1, max_length=64),
    user_id: str = Depends(get_current_user_id),
    quota_service: DailyQuotaService = Depends(get_daily_quota_service),
) -> QuotaDecision:
    """오늘 남은 횟수 조회 (기록하지 않음)"""
    return quota_service.check(user_id, counterparty_id)


@router.post("/{counterparty_id}/consume", response_model=QuotaDecision)
def consume_quota(
    counterparty_id: str = Path(..., min_length=1, max_length=64),
    user_id: str = Depends(get_current_user_id),
    quota_service: DailyQuotaService = Depends(get_daily_quota_service),
) -> QuotaDecision:
    """오늘 한도 1회 사용 - 한도 도달 시 429 (QUOTA_001, Retry-After)"""
    return quota_service.consume(user_id, counterparty_id)


@router.post(
    "/admin/{user_id}/reset",
    response_model=QuotaResetResponse,
    dependencies=[Depends(require_admin)],
)
def reset_quota(
    user_id: str = Path(..., min_length=1, max_length=64),
    counterparty_id: Optional[str] = Query(None, description="특정 상대방만 리셋"),
    quota_service: DailyQuotaService = Depends(get_daily_quota_service),
) -> QuotaResetResponse:
    return quota_service.reset(user_id, counterparty_id)
