import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pointcore.config import settings
from pointcore.database.connection import build_engine
from pointcore.models import Base


def init_db():
    """데이터베이스 초기화 - 모든 테이블 생성"""
    engine = build_engine(settings)
    try:
        Base.metadata.create_all(bind=engine)
        print(f"Database initialized successfully: {engine.url.render_as_string()}")
    except Exception as e:
        print(f"Database initialization failed: {str(e)}")
        raise
    finally:
        engine.dispose()


if __name__ == "__main__":
    init_db()
