from pydantic import BaseModel, Field


class RateLimitDecision(BaseModel):
    """레이트 리밋 판정 결과"""

    allowed: bool
    limit: int
    remaining: int = Field(..., ge=0)
    reset_at_ms: int = Field(..., description="현재 윈도우 종료 시각 (epoch ms)")
    retry_after_seconds: int = Field(0, ge=0)

    def headers(self) -> dict:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(-(-self.reset_at_ms // 1000)),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after_seconds)
        return headers
