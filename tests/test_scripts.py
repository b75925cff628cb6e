import importlib.util
from datetime import timedelta
from pathlib import Path

import pytest

from pointcore.models.quota import DailyQuota
from pointcore.services.daily_quota_service import DailyQuotaService

SCRIPTS_DIR = Path(__file__).resolve().parent.parent / "scripts"


@pytest.fixture
def purge_script():
    spec = importlib.util.spec_from_file_location(
        "purge_quota", SCRIPTS_DIR / "purge_quota.py"
    )
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestPurgeQuotaScript:
    """보관 기간 정리 스크립트 테스트"""

    def test_purges_rows_older_than_retention(self, purge_script, session_factory, settings):
        with session_factory() as session:
            service = DailyQuotaService(session, settings)
            today = service.today()
            service.record("user-1", "partner-1", day=today - timedelta(days=45))
            service.record("user-1", "partner-1", day=today - timedelta(days=31))
            service.record("user-1", "partner-1", day=today - timedelta(days=2))
            service.record("user-1", "partner-1")

        deleted = purge_script.purge_quota(session_factory, settings)

        assert deleted == 2
        with session_factory() as session:
            assert session.query(DailyQuota).count() == 2

    def test_explicit_retention_overrides_setting(self, purge_script, session_factory, settings):
        with session_factory() as session:
            service = DailyQuotaService(session, settings)
            service.record("user-1", "partner-1", day=service.today() - timedelta(days=2))

        assert purge_script.purge_quota(session_factory, settings, retention_days=1) == 1
        assert purge_script.purge_quota(session_factory, settings, retention_days=1) == 0
