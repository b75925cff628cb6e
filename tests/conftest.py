from datetime import datetime, timedelta, timezone

import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient

from pointcore.config import EndpointLimit, Settings
from pointcore.containers import Container
from pointcore.database.connection import build_engine, build_session_factory
from pointcore.main import create_app
from pointcore.models import Base
from pointcore.models.coupon import Coupon

ADMIN_TOKEN = "test-admin-token"


@pytest.fixture
def settings(tmp_path):
    """파일 기반 SQLite 테스트 설정 (스레드별 커넥션 사용 가능)"""
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'pointcore_test.db'}",
        DB_STATEMENT_TIMEOUT_MS=30_000,
        LEDGER_MAX_RETRIES=30,
        LEDGER_RETRY_BACKOFF_MS=2,
        COUPON_MAX_RETRIES=30,
        DAILY_QUOTA_LIMIT=3,
        QUOTA_TIMEZONE="UTC",
        ADMIN_TOKEN=ADMIN_TOKEN,
        RATE_LIMIT_ENDPOINTS={
            "/api/v1/points/balance": EndpointLimit(limit=3, window_ms=60_000),
        },
    )


@pytest.fixture
def engine(settings):
    engine = build_engine(settings)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_coupon(db):
    """테스트용 쿠폰 생성 헬퍼"""

    def _make(code: str = "WELCOME500", **overrides) -> Coupon:
        now = datetime.now(timezone.utc)
        values = dict(
            code=code,
            description="test coupon",
            discount_type="points",
            discount_value=500,
            valid_from=now - timedelta(days=1),
            valid_until=now + timedelta(days=30),
            max_uses=None,
            max_uses_per_user=1,
            target_audience="all",
            specific_user_ids=[],
            current_uses=0,
            is_active=True,
        )
        values.update(overrides)
        coupon = Coupon(**values)
        db.add(coupon)
        db.commit()
        return coupon

    return _make


@pytest.fixture
def container(settings, engine):
    container = Container()
    container.config.override(providers.Object(settings))
    container.engine.override(providers.Object(engine))
    return container


@pytest.fixture
def client(container):
    """테스트 클라이언트 픽스처 (lifespan 포함)"""
    app = create_app(container)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def user_headers():
    return {"X-User-ID": "user-1"}


@pytest.fixture
def admin_headers():
    return {"X-Admin-Token": ADMIN_TOKEN}
