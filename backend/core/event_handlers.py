"""
系统事件处理器
把考试编辑事件写入审计日志
"""

import logging

from core.events import Event, Events, event_bus

logger = logging.getLogger(__name__)


async def on_session_opened(event: Event):
    logger.info(f"打开编辑会话: session={event.data.get('session_id')}, exam_id={event.data.get('exam_id')}")


async def on_session_closed(event: Event):
    logger.info(f"关闭编辑会话: session={event.data.get('session_id')}, exam_id={event.data.get('exam_id')}")


async def on_exam_updated(event: Event):
    logger.info(
        f"考试已修改: exam_id={event.data.get('exam_id')}, "
        f"题目替换={'是' if event.data.get('questions_updated') else '否'}"
    )


async def on_questions_reconciled(event: Event):
    """存在失败项时记录警告"""
    failures = event.data.get("failures") or []
    if failures:
        logger.warning(
            f"题目替换存在失败项: exam_id={event.data.get('exam_id')}, "
            f"失败 {len(failures)} 项: {failures}"
        )
    else:
        logger.info(
            f"题目替换成功: exam_id={event.data.get('exam_id')}, "
            f"删除 {len(event.data.get('removed') or [])} 项, 添加 {event.data.get('added', 0)} 项"
        )


def register_event_handlers():
    """注册所有事件处理器"""
    event_bus.subscribe(Events.EXAM_SESSION_OPENED, on_session_opened)
    event_bus.subscribe(Events.EXAM_SESSION_CLOSED, on_session_closed)
    event_bus.subscribe(Events.EXAM_UPDATED, on_exam_updated)
    event_bus.subscribe(Events.EXAM_QUESTIONS_RECONCILED, on_questions_reconciled)
    logger.info("已注册考试编辑事件处理器")
