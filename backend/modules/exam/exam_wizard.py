"""
考试编辑向导

WizardSession 持有一次编辑的全部内存状态（步骤、表单快照、题目列表、错误），
由会话显式拥有并传给 WizardController，不使用全局状态。

WizardController 负责步骤推进：
- advance(): 校验当前步骤，通过则前进，失败则停留并暴露错误
- retreat(): 无条件后退，不做校验
- submit(): 仅在最后一步可用，重新校验后交给生命周期守卫，
  放行后保存标量字段，题目不受限时再整体替换题目
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from core.errors import BusinessException, ErrorCode

from .exam_client import ExamBackend
from .exam_lifecycle import (
    ConfirmationPort, ExamLifecycleGuard, UserAbortedConfirmation,
    is_editable, questions_read_only,
)
from .exam_marks import apply_total_marks
from .exam_reconcile import QuestionReconciler, ReconciliationReport
from .exam_schemas import (
    ClassInfo, Exam, ExamFormData, ExamFormPatch, ExamStatus, ExamUpdate,
    QuestionData, Subject,
)
from .exam_validation import validate_question, validate_step

logger = logging.getLogger(__name__)


class WizardStep(IntEnum):
    """向导步骤"""
    BASIC = 1
    SCHEDULING = 2
    SETTINGS = 3
    QUESTIONS = 4

    @property
    def title(self) -> str:
        return STEP_TITLES[self]


STEP_TITLES = {
    WizardStep.BASIC: "Basic Details",
    WizardStep.SCHEDULING: "Scheduling",
    WizardStep.SETTINGS: "Settings",
    WizardStep.QUESTIONS: "Questions",
}

FIRST_STEP = WizardStep.BASIC
LAST_STEP = WizardStep.QUESTIONS

# 清空时回落为空串的文本字段
_TEXT_FIELDS = {"title", "description", "instructions"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WizardSession:
    """一次考试编辑的内存状态"""

    def __init__(
        self,
        exam: Exam,
        subjects: Optional[List[Subject]] = None,
        classes: Optional[List[ClassInfo]] = None,
        session_id: Optional[str] = None,
    ):
        self.id = session_id or uuid.uuid4().hex
        self.exam = exam
        self.subjects: List[Subject] = list(subjects or [])
        self.classes: List[ClassInfo] = list(classes or [])

        self.current_step = FIRST_STEP
        self.form = ExamFormData.from_exam(exam)
        self.questions: List[QuestionData] = [q.as_data() for q in exam.questions]
        self._renumber()
        self.errors: Dict[str, str] = {}
        self.notices: List[str] = []

        self.submitting = False
        self.created_at = _utcnow()
        self.touched_at = self.created_at

    # ==================== 状态标记 ====================

    @property
    def is_completed(self) -> bool:
        return not is_editable(self.exam)

    @property
    def is_active(self) -> bool:
        return self.exam.status == ExamStatus.ACTIVE

    @property
    def has_attempts(self) -> bool:
        return self.exam.attempt_count > 0

    @property
    def questions_read_only(self) -> bool:
        return questions_read_only(self.exam)

    def touch(self):
        self.touched_at = _utcnow()

    # ==================== 表单 ====================

    def update_form(self, patch: ExamFormPatch) -> ExamFormData:
        """应用表单修改，总分等只读字段不在 patch 范围内"""
        ExamLifecycleGuard.ensure_editable(self.exam)
        for name, value in patch.model_dump(exclude_unset=True).items():
            if value is None:
                if name in _TEXT_FIELDS:
                    value = ""
                elif isinstance(getattr(self.form, name), bool):
                    continue
            setattr(self.form, name, value)
        self.touch()
        return self.form

    # ==================== 题目 ====================

    def _ensure_questions_editable(self):
        ExamLifecycleGuard.ensure_editable(self.exam)
        if self.questions_read_only:
            raise BusinessException(ErrorCode.EXAM_QUESTIONS_READ_ONLY)

    def _check_index(self, index: int):
        if not 0 <= index < len(self.questions):
            raise BusinessException(ErrorCode.INVALID_OPERATION, f"Question index out of range: {index}")

    @staticmethod
    def _ensure_valid(question: QuestionData):
        message = validate_question(question)
        if message:
            raise BusinessException(ErrorCode.EXAM_QUESTION_INVALID, message)

    def _renumber(self):
        """保持 orderIndex 连续，并同步总分"""
        self.questions = [
            q if q.order_index == i else q.model_copy(update={"order_index": i})
            for i, q in enumerate(self.questions)
        ]
        apply_total_marks(self.form, self.questions)

    def add_question(self, question: QuestionData) -> QuestionData:
        self._ensure_questions_editable()
        self._ensure_valid(question)
        self.questions.append(question.model_copy(update={"order_index": len(self.questions)}))
        self._renumber()
        self.touch()
        return self.questions[-1]

    def update_question(self, index: int, question: QuestionData) -> QuestionData:
        self._ensure_questions_editable()
        self._check_index(index)
        self._ensure_valid(question)
        self.questions[index] = question.model_copy(update={"order_index": index})
        self._renumber()
        self.touch()
        return self.questions[index]

    def delete_question(self, index: int):
        self._ensure_questions_editable()
        self._check_index(index)
        del self.questions[index]
        self._renumber()
        self.touch()

    def move_question(self, index: int, direction: str):
        """上移/下移，越界移动为空操作"""
        self._ensure_questions_editable()
        self._check_index(index)
        target = index - 1 if direction == "up" else index + 1
        if not 0 <= target < len(self.questions):
            return
        self.questions[index], self.questions[target] = self.questions[target], self.questions[index]
        self._renumber()
        self.touch()

    # ==================== 视图 ====================

    def to_view(self) -> Dict[str, Any]:
        return {
            "sessionId": self.id,
            "examId": self.exam.id,
            "currentStep": int(self.current_step),
            "steps": [{"id": int(s), "title": s.title} for s in WizardStep],
            "form": self.form.model_dump(by_alias=True, mode="json"),
            "questions": [q.model_dump(by_alias=True, mode="json") for q in self.questions],
            "errors": dict(self.errors),
            "status": self.exam.status.value,
            "attemptCount": self.exam.attempt_count,
            "flags": {
                "completed": self.is_completed,
                "active": self.is_active,
                "hasAttempts": self.has_attempts,
                "questionsReadOnly": self.questions_read_only,
            },
            "subjects": [s.model_dump(by_alias=True) for s in self.subjects],
            "classes": [c.model_dump(by_alias=True) for c in self.classes],
            "notices": list(self.notices),
        }


class SubmitOutcome(str, Enum):
    """提交结果"""
    UPDATED = "UPDATED"
    ABORTED = "ABORTED"
    INVALID = "INVALID"


@dataclass
class SubmitResult:
    outcome: SubmitOutcome
    message: str = ""
    errors: Dict[str, str] = field(default_factory=dict)
    questions_updated: bool = False
    reconciliation: Optional[ReconciliationReport] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "message": self.message,
            "errors": dict(self.errors),
            "questionsUpdated": self.questions_updated,
            "reconciliation": self.reconciliation.to_dict() if self.reconciliation else None,
        }


class WizardController:
    """向导步骤控制器"""

    def __init__(
        self,
        session: WizardSession,
        backend: Optional[ExamBackend] = None,
        confirm: Optional[ConfirmationPort] = None,
        reconciler: Optional[QuestionReconciler] = None,
    ):
        self.session = session
        self.backend = backend
        self.guard = ExamLifecycleGuard(confirm) if confirm else None
        if reconciler is None and backend is not None:
            reconciler = QuestionReconciler(backend)
        self.reconciler = reconciler

    def _validate_current(self) -> Dict[str, str]:
        session = self.session
        session.errors = validate_step(session.current_step, session.form, session.questions)
        return session.errors

    def _validate_all(self) -> Dict[str, str]:
        """提交前复核全部步骤，有错误时回到第一个出错的步骤"""
        session = self.session
        errors: Dict[str, str] = {}
        first_failed = None
        for step in WizardStep:
            step_errors = validate_step(step, session.form, session.questions)
            if step_errors and first_failed is None:
                first_failed = step
            errors.update(step_errors)
        if first_failed is not None:
            session.current_step = first_failed
        session.errors = errors
        return errors

    def advance(self) -> bool:
        """前进一步，校验失败时停留在当前步骤"""
        session = self.session
        session.touch()
        if self._validate_current():
            return False
        if session.current_step < LAST_STEP:
            session.current_step = WizardStep(session.current_step + 1)
        return True

    def retreat(self) -> WizardStep:
        """后退一步，不做校验"""
        session = self.session
        session.touch()
        if session.current_step > FIRST_STEP:
            session.current_step = WizardStep(session.current_step - 1)
        return session.current_step

    async def submit(self) -> SubmitResult:
        """
        提交修改

        Raises:
            LifecycleViolation: 考试已结束（不发起任何后端请求）
            BackendError: updateExam 失败
        """
        if self.backend is None or self.guard is None:
            raise RuntimeError("提交需要后端客户端与确认端口")

        session = self.session
        session.touch()
        if session.current_step != LAST_STEP:
            raise BusinessException(ErrorCode.INVALID_OPERATION, "Submit is only available on the last step")
        if session.submitting:
            raise BusinessException(ErrorCode.RESOURCE_CONFLICT, "A submission is already in progress")
        ExamLifecycleGuard.ensure_editable(session.exam)

        errors = self._validate_all()
        if errors:
            return SubmitResult(SubmitOutcome.INVALID, errors=errors)

        try:
            decision = await self.guard.clear_submit(session.exam)
        except UserAbortedConfirmation:
            return SubmitResult(SubmitOutcome.ABORTED)

        exam_id = session.exam.id
        session.submitting = True
        try:
            await self.backend.update_exam(exam_id, ExamUpdate.from_form(session.form))
            logger.info(f"考试已更新: exam_id={exam_id}, session={session.id}")

            report = None
            if decision.reconcile_questions:
                report = await self.reconciler.replace_all(exam_id, session.exam.questions, session.questions)
        finally:
            session.submitting = False

        return SubmitResult(
            SubmitOutcome.UPDATED,
            message="Exam updated successfully",
            questions_updated=report is not None,
            reconciliation=report,
        )
