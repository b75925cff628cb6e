"""
일일 사용 한도 카운터 정리 스크립트
보관 기간(QUOTA_RETENTION_DAYS)이 지난 daily_quota 행을 삭제합니다.

사용법:
    python scripts/purge_quota.py            # 설정된 보관 기간 사용
    python scripts/purge_quota.py 7          # 최근 7일만 보관
"""

import os
import sys
from typing import Optional

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.orm import sessionmaker

from pointcore.config import Settings, settings
from pointcore.database.connection import build_engine, build_session_factory
from pointcore.database.session import get_db_context
from pointcore.services.daily_quota_service import DailyQuotaService


def purge_quota(
    session_factory: sessionmaker,
    app_settings: Settings,
    retention_days: Optional[int] = None,
) -> int:
    """보관 기간이 지난 카운터 삭제 - 삭제된 행 수 반환"""
    with get_db_context(session_factory) as db:
        return DailyQuotaService(db, app_settings).purge_expired(retention_days)


def main():
    retention_days = int(sys.argv[1]) if len(sys.argv) > 1 else None

    engine = build_engine(settings)
    try:
        deleted = purge_quota(build_session_factory(engine), settings, retention_days)
        print(f"Purged {deleted} daily quota rows")
    except Exception as e:
        print(f"Daily quota purge failed: {str(e)}")
        raise
    finally:
        engine.dispose()


if __name__ == "__main__":
    main()
