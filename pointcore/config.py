from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EndpointLimit(BaseModel):
    """엔드포인트별 레이트 리밋 설정"""

    limit: int = Field(..., gt=0)
    window_ms: int = Field(..., gt=0)


def _default_endpoint_limits() -> Dict[str, EndpointLimit]:
    return {
        "/api/v1/coupons/redeem": EndpointLimit(limit=5, window_ms=60_000),
        "/api/v1/coupons/validate": EndpointLimit(limit=20, window_ms=60_000),
        "/api/v1/points/consume": EndpointLimit(limit=30, window_ms=60_000),
        "/api/v1/coupons/admin": EndpointLimit(limit=10, window_ms=60_000),
        "/api/v1/points/admin/credit": EndpointLimit(limit=30, window_ms=60_000),
    }


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file="pointcore/.env",
        env_file_encoding="utf-8",
        extra="allow",
    )

    # Application
    APP_NAME: str = "Point Core API"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./pointcore.db"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT_SECONDS: int = 10  # 커넥션 풀 대기 상한
    DB_STATEMENT_TIMEOUT_MS: int = 5000  # SQLite busy timeout / Postgres statement_timeout

    # Ledger
    LEDGER_MAX_RETRIES: int = 5  # 낙관적 충돌 재시도 횟수
    LEDGER_RETRY_BACKOFF_MS: int = 10

    # Coupons
    COUPON_MAX_RETRIES: int = 5

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT_LIMIT: int = 100
    RATE_LIMIT_DEFAULT_WINDOW_MS: int = 60_000
    RATE_LIMIT_ENDPOINTS: Dict[str, EndpointLimit] = Field(
        default_factory=_default_endpoint_limits
    )
    RATE_LIMIT_PRUNE_PROBABILITY: float = 0.01
    RATE_LIMIT_EXCLUDE_PATHS: List[str] = Field(
        default_factory=lambda: ["/health", "/docs", "/openapi.json", "/redoc"]
    )

    # Daily Quota
    DAILY_QUOTA_LIMIT: int = 3  # (사용자, 상대방) 당 하루 최대 횟수
    QUOTA_TIMEZONE: str = "UTC"
    QUOTA_RETENTION_DAYS: int = 30

    # Admin
    ADMIN_TOKEN: Optional[str] = None

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    """환경 변수 기반 설정 인스턴스를 반환합니다."""

    return Settings()


settings = get_settings()
