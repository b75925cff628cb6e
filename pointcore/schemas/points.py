from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from pointcore.models.points import TransactionKind


class TransactionEntry(BaseModel):
    """포인트 원장 항목"""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="원장 항목 ID")
    user_id: str = Field(..., description="사용자 ID")
    kind: TransactionKind = Field(..., description="거래 유형")
    amount: int = Field(..., description="부호 있는 포인트 변화량")
    balance_before: int = Field(..., description="거래 전 잔액")
    balance_after: int = Field(..., description="거래 후 잔액")
    description: str = Field("", description="거래 사유")
    ref_id: Optional[str] = Field(None, description="외부 참조 ID (멱등성 키)")
    created_at: datetime = Field(..., description="생성 시간")


class LedgerResult(BaseModel):
    """잔액 변경 결과"""

    transaction: TransactionEntry
    balance: int = Field(..., ge=0, description="거래 후 잔액")
    replayed: bool = Field(
        False, description="같은 ref_id로 이미 처리된 거래를 반환한 경우 True"
    )


class BalanceResponse(BaseModel):
    user_id: str
    balance: int = Field(..., description="현재 포인트 잔액")


class LedgerHistoryResponse(BaseModel):
    """포인트 원장 조회 응답"""

    balance: int = Field(..., description="현재 잔액")
    entries: List[TransactionEntry] = Field(..., description="원장 항목 목록 (최신순)")
    total_count: int = Field(..., description="전체 항목 수")
    has_next: bool = Field(..., description="다음 페이지 존재 여부")


class IntegrityCheckResponse(BaseModel):
    """원장 합계와 저장된 잔액 비교 결과"""

    status: str = Field(..., description="OK | MISMATCH")
    user_id: str
    calculated_balance: int = Field(..., description="원장 합계로 계산한 잔액")
    recorded_balance: int = Field(..., description="저장된 잔액")
    entry_count: int
    verified_at: datetime


class ConsumeRequest(BaseModel):
    amount: int = Field(..., gt=0, description="차감할 포인트")
    description: str = Field(..., min_length=1, max_length=255)


class CreditRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    amount: int = Field(..., gt=0)
    kind: TransactionKind = TransactionKind.PURCHASE
    description: str = Field(..., min_length=1, max_length=255)
    ref_id: Optional[str] = Field(None, max_length=128)


class AdjustmentRequest(BaseModel):
    """관리자 포인트 조정 요청"""

    user_id: str = Field(..., min_length=1, max_length=64)
    amount: int = Field(..., description="조정할 포인트 (양수: 추가, 음수: 차감)")
    description: str = Field(..., min_length=1, max_length=255)


class FirstPurchaseResponse(BaseModel):
    is_first_purchase: bool
