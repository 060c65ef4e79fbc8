"""
工具函数目录
按功能分类组织
"""

from .timezone import (
    get_display_tz,
    to_display_time,
    format_datetime_local,
    to_utc_iso,
)

__all__ = [
    # 时间处理
    "get_display_tz",
    "to_display_time",
    "format_datetime_local",
    "to_utc_iso",
]
