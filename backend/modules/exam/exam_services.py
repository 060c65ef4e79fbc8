"""
考试编辑模块业务逻辑
管理内存中的编辑会话，串联加载、步骤推进与提交
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from core.config import get_settings
from core.errors import AppException, BusinessException, ErrorCode, NotFoundException
from core.events import Event, Events, event_bus

from .exam_client import ExamBackend
from .exam_lifecycle import ConfirmationPort, ConfirmationPrompt
from .exam_schemas import SubmitConfirmations
from .exam_wizard import SubmitOutcome, SubmitResult, WizardController, WizardSession

logger = logging.getLogger(__name__)

MODULE_ID = "exam"
REFERENCE_LOAD_FAILED = "Failed to load subjects and classes"


class WizardSessionStore:
    """
    编辑会话存储
    仅保存在进程内存中，空闲超过 TTL 的会话在访问时被清理
    """

    def __init__(self, ttl_minutes: Optional[int] = None):
        self._sessions: Dict[str, WizardSession] = {}
        self._ttl_minutes = ttl_minutes

    @property
    def ttl(self) -> timedelta:
        minutes = self._ttl_minutes if self._ttl_minutes is not None else get_settings().wizard_session_ttl_minutes
        return timedelta(minutes=minutes)

    def add(self, session: WizardSession) -> WizardSession:
        self.purge_expired()
        self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> Optional[WizardSession]:
        self.purge_expired()
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> Optional[WizardSession]:
        return self._sessions.pop(session_id, None)

    def purge_expired(self, now: Optional[datetime] = None) -> List[str]:
        """清理过期会话，返回被清理的会话ID"""
        now = now or datetime.now(timezone.utc)
        expired = [
            sid for sid, s in self._sessions.items()
            if not s.submitting and now - s.touched_at > self.ttl
        ]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info(f"清理过期编辑会话 {len(expired)} 个")
        return expired

    def clear(self):
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)


# 全局会话存储
wizard_sessions = WizardSessionStore()


def preset_confirmations(answers: SubmitConfirmations) -> ConfirmationPort:
    """
    基于请求体中的答复构造确认端口
    未答复的提示以 409 返回给前端，由前端询问用户后带上答复重新提交
    """
    mapping = {
        ConfirmationPrompt.ACTIVE_EXAM: answers.active_exam,
        ConfirmationPrompt.EXISTING_ATTEMPTS: answers.existing_attempts,
    }

    async def confirm(prompt: ConfirmationPrompt) -> bool:
        answer = mapping.get(prompt)
        if answer is None:
            raise BusinessException(
                ErrorCode.EXAM_CONFIRMATION_REQUIRED,
                prompt.message,
                data={"prompt": prompt.value}
            )
        return answer

    return confirm


class ExamEditService:
    """
    考试编辑服务类
    提供会话的打开、查询、关闭与提交
    """

    @staticmethod
    async def open_session(backend: ExamBackend, exam_id: str, store: WizardSessionStore = None) -> WizardSession:
        """
        加载考试并创建编辑会话
        考试加载失败直接抛出；科目/班级加载失败只提示，不影响编辑
        """
        store = store if store is not None else wizard_sessions
        exam = await backend.fetch_exam(exam_id)

        notices: List[str] = []
        try:
            subjects = await backend.fetch_subjects()
            classes = await backend.fetch_classes()
        except AppException as e:
            logger.warning(f"加载科目/班级失败: {e.message}")
            subjects, classes = [], []
            notices.append(REFERENCE_LOAD_FAILED)

        session = WizardSession(exam, subjects=subjects, classes=classes)
        session.notices.extend(notices)
        store.add(session)

        logger.info(
            f"打开编辑会话: session={session.id}, exam_id={exam.id}, "
            f"status={exam.status.value}, attempts={exam.attempt_count}"
        )
        await event_bus.publish(Event(
            name=Events.EXAM_SESSION_OPENED,
            source=MODULE_ID,
            data={"session_id": session.id, "exam_id": exam.id}
        ))
        return session

    @staticmethod
    def get_session(session_id: str, store: WizardSessionStore = None) -> WizardSession:
        store = store if store is not None else wizard_sessions
        session = store.get(session_id)
        if session is None:
            raise NotFoundException("Editing session", session_id, code=ErrorCode.WIZARD_SESSION_NOT_FOUND)
        return session

    @staticmethod
    async def close_session(session_id: str, store: WizardSessionStore = None) -> bool:
        store = store if store is not None else wizard_sessions
        session = store.remove(session_id)
        if session is None:
            return False
        logger.info(f"关闭编辑会话: session={session_id}")
        await event_bus.publish(Event(
            name=Events.EXAM_SESSION_CLOSED,
            source=MODULE_ID,
            data={"session_id": session_id, "exam_id": session.exam.id}
        ))
        return True

    @staticmethod
    async def submit(
        session: WizardSession,
        backend: ExamBackend,
        confirm: ConfirmationPort,
        store: WizardSessionStore = None,
    ) -> SubmitResult:
        """
        提交向导
        成功后会话即结束（与前端提交后离开编辑页一致）
        """
        controller = WizardController(session, backend, confirm)
        result = await controller.submit()
        if result.outcome != SubmitOutcome.UPDATED:
            return result

        await event_bus.publish(Event(
            name=Events.EXAM_UPDATED,
            source=MODULE_ID,
            data={"exam_id": session.exam.id, "questions_updated": result.questions_updated}
        ))
        if result.reconciliation is not None:
            await event_bus.publish(Event(
                name=Events.EXAM_QUESTIONS_RECONCILED,
                source=MODULE_ID,
                data={"exam_id": session.exam.id, **result.reconciliation.to_dict()}
            ))

        await ExamEditService.close_session(session.id, store)
        return result
