"""
数据验证模式目录
"""

from .response import success

__all__ = [
    "success",
]
