"""
事件总线系统
向审计日志等订阅方广播考试编辑过程中的关键事件
"""

from typing import Callable, Dict, List, Any
from dataclasses import dataclass, field
from datetime import datetime, timezone
import asyncio
import logging

logger = logging.getLogger(__name__)


@dataclass
class Event:
    """事件数据结构"""
    name: str
    source: str  # 发送模块ID
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# 事件处理器类型
EventHandler = Callable[[Event], Any]


class EventBus:
    """事件总线"""

    def __init__(self):
        self._handlers: Dict[str, List[EventHandler]] = {}

    def subscribe(self, event_name: str, handler: EventHandler):
        """订阅事件"""
        self._handlers.setdefault(event_name, []).append(handler)
        logger.debug(f"订阅事件: {event_name}")

    async def publish(self, event: Event):
        """
        发布事件
        订阅者按注册顺序依次执行，单个订阅者出错只记录日志，不影响发布方
        """
        logger.debug(f"发布事件: {event.name} 来自 {event.source}")

        for handler in list(self._handlers.get(event.name, [])):
            try:
                if asyncio.iscoroutinefunction(handler):
                    await handler(event)
                else:
                    handler(event)
            except Exception as e:
                logger.error(f"事件处理错误 {event.name}: {e}")

    def clear(self):
        """清空全部订阅"""
        self._handlers.clear()


# 全局事件总线实例
event_bus = EventBus()


class Events:
    """事件名称常量"""
    # 系统事件
    SYSTEM_STARTUP = "system.startup"
    SYSTEM_SHUTDOWN = "system.shutdown"

    # 考试编辑事件
    EXAM_SESSION_OPENED = "exam.session.opened"
    EXAM_SESSION_CLOSED = "exam.session.closed"
    EXAM_UPDATED = "exam.updated"
    EXAM_QUESTIONS_RECONCILED = "exam.questions.reconciled"
