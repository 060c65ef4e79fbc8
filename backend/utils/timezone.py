# -*- coding: utf-8 -*-
"""
时区工具模块
表单中的 datetime-local 字符串按配置的显示时区解释，提交后端时统一转换为 UTC
"""

from datetime import datetime, timezone, timedelta
from typing import Optional

from core.config import get_settings

# datetime-local 输入框格式（精确到分钟）
DATETIME_LOCAL_FORMAT = "%Y-%m-%dT%H:%M"


def get_display_tz() -> timezone:
    """获取显示时区"""
    return timezone(timedelta(hours=get_settings().display_utc_offset_hours))


def to_display_time(dt: Optional[datetime]) -> Optional[datetime]:
    """
    将任意时间转换为显示时区时间

    Args:
        dt: 待转换的时间对象

    Returns:
        datetime: 带显示时区信息的时间
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        # 无时区信息，视为显示时区的本地时间
        return dt.replace(tzinfo=get_display_tz())
    return dt.astimezone(get_display_tz())


def format_datetime_local(dt: Optional[datetime]) -> str:
    """格式化为 datetime-local 字符串，例如 2025-01-01T10:00"""
    if dt is None:
        return ""
    return to_display_time(dt).strftime(DATETIME_LOCAL_FORMAT)


def to_utc_iso(dt: Optional[datetime]) -> Optional[str]:
    """
    转换为 UTC ISO-8601 字符串（后端接口格式）

    Returns:
        str: 例如 2025-01-01T02:00:00.000Z
    """
    if dt is None:
        return None
    utc = to_display_time(dt).astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"
