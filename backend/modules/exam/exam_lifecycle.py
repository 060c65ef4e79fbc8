"""
考试生命周期守卫

提交前根据考试状态与作答次数决定是否允许修改：
- COMPLETED：直接拒绝，不发起任何后端请求
- ACTIVE：需要用户确认
- 已有作答记录：再次确认，且题目只读（不做题目替换）
任一确认被取消，整个提交作废。

确认通过可注入的确认端口（异步回调，返回 bool）完成，与具体界面形式无关。
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List

from core.errors import BusinessException, ErrorCode

from .exam_schemas import Exam, ExamStatus

logger = logging.getLogger(__name__)


class ConfirmationPrompt(str, Enum):
    """确认提示"""
    ACTIVE_EXAM = "activeExam"
    EXISTING_ATTEMPTS = "existingAttempts"

    @property
    def message(self) -> str:
        return PROMPT_MESSAGES[self]


PROMPT_MESSAGES = {
    ConfirmationPrompt.ACTIVE_EXAM: (
        "This exam is currently active. Students may be taking it now. "
        "Are you sure you want to make changes?"
    ),
    ConfirmationPrompt.EXISTING_ATTEMPTS: (
        "Warning: This exam has student attempts. "
        "Editing questions may invalidate existing answers. Continue?"
    ),
}

# 确认端口：返回 True 继续，False 取消
ConfirmationPort = Callable[[ConfirmationPrompt], Awaitable[bool]]


class LifecycleViolation(BusinessException):
    """已结束的考试不可编辑"""

    def __init__(self, exam_id: str = None):
        super().__init__(
            code=ErrorCode.EXAM_COMPLETED,
            data={"examId": exam_id} if exam_id else None
        )


class UserAbortedConfirmation(Exception):
    """用户取消确认（正常的空操作，不作为错误上报）"""

    def __init__(self, prompt: ConfirmationPrompt):
        self.prompt = prompt
        super().__init__(f"用户取消确认: {prompt.value}")


@dataclass
class GuardDecision:
    """守卫放行结果"""
    reconcile_questions: bool
    confirmed: List[ConfirmationPrompt] = field(default_factory=list)


def is_editable(exam: Exam) -> bool:
    return exam.status != ExamStatus.COMPLETED


def questions_read_only(exam: Exam) -> bool:
    """已有作答记录时题目只读"""
    return exam.attempt_count > 0


class ExamLifecycleGuard:
    """生命周期守卫"""

    def __init__(self, confirm: ConfirmationPort):
        self._confirm = confirm

    @staticmethod
    def ensure_editable(exam: Exam):
        if not is_editable(exam):
            logger.warning(f"拒绝编辑已结束的考试: exam_id={exam.id}")
            raise LifecycleViolation(exam.id)

    async def _ask(self, prompt: ConfirmationPrompt, confirmed: List[ConfirmationPrompt]):
        if not await self._confirm(prompt):
            logger.info(f"用户取消提交: prompt={prompt.value}")
            raise UserAbortedConfirmation(prompt)
        confirmed.append(prompt)

    async def clear_submit(self, exam: Exam) -> GuardDecision:
        """
        依次检查状态与作答记录

        Raises:
            LifecycleViolation: 考试已结束
            UserAbortedConfirmation: 用户取消任一确认
        """
        self.ensure_editable(exam)

        confirmed: List[ConfirmationPrompt] = []
        if exam.status == ExamStatus.ACTIVE:
            await self._ask(ConfirmationPrompt.ACTIVE_EXAM, confirmed)

        read_only = questions_read_only(exam)
        if read_only:
            await self._ask(ConfirmationPrompt.EXISTING_ATTEMPTS, confirmed)

        return GuardDecision(reconcile_questions=not read_only, confirmed=confirmed)
