"""
核心模块
提供服务的基础设施和通用功能

导出列表：
- 配置管理: get_settings, Settings
- 事件系统: event_bus, Events, Event
- 错误处理: ErrorCode, AppException, register_exception_handlers
- 中间件: RequestLoggingMiddleware
"""

# 配置管理
from .config import get_settings, Settings, reload_settings

# 事件系统
from .events import event_bus, Events, Event, EventBus

# 错误处理
from .errors import (
    ErrorCode,
    AppException,
    NotFoundException,
    BusinessException,
    register_exception_handlers
)

# 中间件
from .middleware import RequestLoggingMiddleware


__all__ = [
    # 配置
    "get_settings",
    "Settings",
    "reload_settings",

    # 事件
    "event_bus",
    "Events",
    "Event",
    "EventBus",

    # 错误
    "ErrorCode",
    "AppException",
    "NotFoundException",
    "BusinessException",
    "register_exception_handlers",

    # 中间件
    "RequestLoggingMiddleware",
]
