"""
考试编辑向导校验引擎

每个步骤对应一个纯函数：(表单快照, 题目列表) -> {字段: 错误信息}
返回空字典表示通过。函数不修改入参、不缓存结果，每次步骤切换都完整重跑。
"""

from datetime import datetime
from typing import Callable, Dict, Optional, Sequence

from utils.timezone import to_display_time

from .exam_schemas import ExamFormData, QuestionData, QuestionType

ErrorMap = Dict[str, str]

# 步骤编号
STEP_BASIC = 1
STEP_SCHEDULING = 2
STEP_SETTINGS = 3
STEP_QUESTIONS = 4


def _is_positive_int(value) -> bool:
    # bool 是 int 的子类，需要排除
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _is_after(end: datetime, start: datetime) -> bool:
    return to_display_time(end) > to_display_time(start)


def validate_basic(form: ExamFormData, questions: Sequence[QuestionData]) -> ErrorMap:
    """步骤1：基本信息"""
    errors: ErrorMap = {}
    if not (form.title or "").strip():
        errors["title"] = "Title is required"
    return errors


def validate_scheduling(form: ExamFormData, questions: Sequence[QuestionData]) -> ErrorMap:
    """步骤2：时间安排"""
    errors: ErrorMap = {}
    if not form.start_time:
        errors["startTime"] = "Start time is required"
    if not form.end_time:
        errors["endTime"] = "End time is required"
    if form.start_time and form.end_time and not _is_after(form.end_time, form.start_time):
        errors["endTime"] = "End time must be after start time"
    if not _is_positive_int(form.duration):
        errors["duration"] = "Duration must be greater than 0"
    return errors


def validate_settings(form: ExamFormData, questions: Sequence[QuestionData]) -> ErrorMap:
    """
    步骤3：考试设置

    及格分与总分的比较只在两者都为非零数值时进行；
    总分为 0（尚无题目）时不拦截，题目步骤会再要求至少一道题。
    """
    errors: ErrorMap = {}
    if form.passing_marks is not None and form.passing_marks < 0:
        errors["passingMarks"] = "Passing marks must be 0 or greater"
    if form.passing_marks and form.total_marks and form.passing_marks > form.total_marks:
        errors["passingMarks"] = "Passing marks cannot exceed total marks"
    if not _is_positive_int(form.max_attempts):
        errors["maxAttempts"] = "Maximum attempts must be at least 1"
    return errors


def validate_questions(form: ExamFormData, questions: Sequence[QuestionData]) -> ErrorMap:
    """步骤4：题目"""
    errors: ErrorMap = {}
    if len(questions) == 0:
        errors["questions"] = "Add at least one question"
    return errors


STEP_VALIDATORS: Dict[int, Callable[[ExamFormData, Sequence[QuestionData]], ErrorMap]] = {
    STEP_BASIC: validate_basic,
    STEP_SCHEDULING: validate_scheduling,
    STEP_SETTINGS: validate_settings,
    STEP_QUESTIONS: validate_questions,
}


def validate_step(step: int, form: ExamFormData, questions: Sequence[QuestionData]) -> ErrorMap:
    """
    校验指定步骤

    Args:
        step: 步骤编号（1-4）
        form: 表单快照
        questions: 当前题目列表

    Returns:
        字段到错误信息的映射，空字典表示通过
    """
    validator = STEP_VALIDATORS.get(int(step))
    if validator is None:
        raise ValueError(f"未知的向导步骤: {step}")
    return validator(form, questions)


def validate_question(question: QuestionData) -> Optional[str]:
    """
    题目编辑器的保存校验
    返回错误信息，None 表示通过
    """
    if not question.question_text.strip():
        return "Question text is required"

    if question.question_type == QuestionType.MULTIPLE_CHOICE and (
        len(question.options) < 2 or not any(opt.is_correct for opt in question.options)
    ):
        return "MCQ must have at least 2 options and one correct answer"

    return None
