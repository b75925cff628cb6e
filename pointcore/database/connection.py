from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from pointcore.config import Settings


def build_engine(settings: Settings) -> Engine:
    """설정에 맞는 엔진 생성 - 모든 저장소 호출은 유한한 타임아웃을 가짐"""

    if settings.is_sqlite:
        engine = create_engine(
            settings.DATABASE_URL,
            echo=settings.DEBUG,
            connect_args={
                "check_same_thread": False,
                # 다른 쓰기 트랜잭션의 잠금을 기다리는 최대 시간 (초)
                "timeout": settings.DB_STATEMENT_TIMEOUT_MS / 1000,
            },
        )

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(
        settings.DATABASE_URL,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT_SECONDS,
        pool_pre_ping=True,  # 연결 유효성 검사
        pool_recycle=3600,  # 1시간마다 연결 재생성
        echo=settings.DEBUG,  # 디버그 모드에서 SQL 로깅
        connect_args={
            "options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}"
        },
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    # expire_on_commit=False: 커밋 후에도 같은 요청 범위에서 속성 접근 가능
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        expire_on_commit=False,
    )
