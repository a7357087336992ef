"""
시간 관련 유틸리티 함수
"""
from datetime import datetime, timezone


def utc_now() -> datetime:
    """timezone 정보가 포함된 현재 UTC 시각을 반환합니다."""
    return datetime.now(timezone.utc)


def isoformat_z(dt: datetime) -> str:
    """
    datetime을 밀리초 단위 ISO 8601 문자열로 변환합니다.

    Examples:
        >>> isoformat_z(datetime(2024, 1, 1, tzinfo=timezone.utc))
        '2024-01-01T00:00:00.000Z'
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.isoformat(timespec="milliseconds") + "Z"


def utc_timestamp() -> str:
    """프레임에 싣는 현재 시각 문자열"""
    return isoformat_z(utc_now())
