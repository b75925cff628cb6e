from datetime import date

from pydantic import BaseModel, ConfigDict, Field


class QuotaDecision(BaseModel):
    """일일 한도 판정 결과"""

    allowed: bool
    remaining: int = Field(..., ge=0)
    current: int = Field(..., ge=0)
    limit: int
    day: date


class DailyQuotaEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    counterparty_id: str
    quota_date: date
    count: int


class QuotaResetResponse(BaseModel):
    user_id: str
    day: date
    deleted: int
