"""
타임존 유틸리티

일일 한도는 서비스 로컬 달력(QUOTA_TIMEZONE) 기준으로 계산합니다.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

import pytz


def get_zone(name: str):
    return pytz.timezone(name)


def ensure_aware(dt: datetime) -> datetime:
    """naive datetime은 UTC로 가정 (SQLite는 타임존 정보를 저장하지 않음)"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def local_today(zone_name: str, now: Optional[datetime] = None) -> date:
    """서비스 로컬 타임존 기준 오늘 날짜"""
    now = ensure_aware(now) if now else datetime.now(timezone.utc)
    return now.astimezone(get_zone(zone_name)).date()


def seconds_until_next_day(zone_name: str, now: Optional[datetime] = None) -> int:
    """로컬 자정까지 남은 초 (올림, 최소 1)"""
    zone = get_zone(zone_name)
    now = ensure_aware(now) if now else datetime.now(timezone.utc)
    local_now = now.astimezone(zone)
    # pytz 타임존은 localize로 붙여야 DST 오프셋이 맞음
    next_midnight = zone.localize(
        datetime.combine(local_now.date() + timedelta(days=1), time.min)
    )
    remaining = (next_midnight - local_now).total_seconds()
    return max(1, int(-(-remaining // 1)))
