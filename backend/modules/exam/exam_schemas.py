"""
考试编辑模块数据结构
定义后端考试/题目模型、向导表单快照以及请求体
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel

from utils.timezone import format_datetime_local, to_utc_iso


class CamelModel(BaseModel):
    """后端接口使用 camelCase 字段名，Python 侧使用 snake_case"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ==================== 枚举 ====================

class ExamStatus(str, Enum):
    """考试状态"""
    DRAFT = "DRAFT"
    UPCOMING = "UPCOMING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ExamType(str, Enum):
    """考试类型"""
    MIDTERM = "MIDTERM"
    FINAL = "FINAL"
    QUIZ = "QUIZ"
    ASSIGNMENT = "ASSIGNMENT"
    PROJECT = "PROJECT"


class QuestionType(str, Enum):
    """题目类型"""
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    FILE_UPLOAD = "FILE_UPLOAD"
    SHORT_ANSWER = "SHORT_ANSWER"
    LONG_ANSWER = "LONG_ANSWER"


# ==================== 题目模型 ====================

class QuestionOption(CamelModel):
    """选项"""
    option_text: str = ""
    is_correct: bool = False


class QuestionData(CamelModel):
    """
    题目内容（向导内存中的可编辑题目，也是 addQuestion 的请求体）
    不携带后端 ID：编辑与排序过程中不保留题目身份
    """
    question_text: str = ""
    question_type: QuestionType = QuestionType.MULTIPLE_CHOICE
    marks: float = Field(5, ge=0)
    negative_marks: float = Field(0, ge=0)
    explanation: Optional[str] = None
    allow_multiple_files: bool = True
    max_files: int = Field(5, ge=1)
    accepted_file_types: Optional[str] = "image/jpeg,image/png,application/pdf"
    max_file_size_mb: float = Field(10, gt=0, alias="maxFileSizeMB")
    is_optional: bool = False
    section_name: Optional[str] = None
    order_index: int = Field(0, ge=0)
    options: List[QuestionOption] = Field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        """转换为后端请求体"""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class Question(QuestionData):
    """已持久化的题目（来自后端，带 ID）"""
    id: str

    def as_data(self) -> QuestionData:
        """去掉 ID，得到可编辑副本"""
        return QuestionData.model_validate(self.model_dump(exclude={"id"}))


# ==================== 参考数据 ====================

class Subject(CamelModel):
    """科目"""
    id: str
    name: str


class ClassInfo(CamelModel):
    """班级"""
    id: str
    name: str


# ==================== 考试模型 ====================

class Exam(CamelModel):
    """后端返回的考试详情（含题目与作答次数）"""
    id: str
    title: str
    description: Optional[str] = None
    instructions: Optional[str] = None
    start_time: datetime
    end_time: datetime
    duration: int
    total_marks: float = 0
    passing_marks: float = 0
    allow_late_submission: bool = False
    shuffle_questions: bool = False
    show_results_immediately: bool = False
    allow_review: bool = True
    max_attempts: int = 1
    status: ExamStatus = ExamStatus.DRAFT
    subject_id: Optional[str] = None
    class_id: Optional[str] = None
    exam_type: ExamType = Field(ExamType.QUIZ, alias="type")
    attempt_count: int = Field(0, ge=0)
    questions: List[Question] = Field(default_factory=list)


class ExamFormData(CamelModel):
    """
    向导表单快照
    字段允许暂存不合法的值，由校验引擎在步骤切换时统一检查
    """
    title: str = ""
    description: str = ""
    instructions: str = ""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[int] = 60
    total_marks: float = 0
    passing_marks: Optional[float] = 0
    allow_late_submission: bool = False
    shuffle_questions: bool = False
    show_results_immediately: bool = False
    allow_review: bool = True
    max_attempts: Optional[int] = 1
    # 以下字段在编辑模式下只读
    subject_id: Optional[str] = None
    class_id: Optional[str] = None
    exam_type: Optional[ExamType] = Field(None, alias="type")

    @classmethod
    def from_exam(cls, exam: Exam) -> "ExamFormData":
        """用已加载的考试填充表单"""
        return cls(
            title=exam.title,
            description=exam.description or "",
            instructions=exam.instructions or "",
            start_time=exam.start_time,
            end_time=exam.end_time,
            duration=exam.duration,
            total_marks=exam.total_marks,
            passing_marks=exam.passing_marks,
            allow_late_submission=exam.allow_late_submission,
            shuffle_questions=exam.shuffle_questions,
            show_results_immediately=exam.show_results_immediately,
            allow_review=exam.allow_review,
            max_attempts=exam.max_attempts,
            subject_id=exam.subject_id,
            class_id=exam.class_id,
            exam_type=exam.exam_type,
        )

    @field_serializer("start_time", "end_time")
    def _serialize_local(self, value: Optional[datetime]) -> Optional[str]:
        # 与 datetime-local 输入框保持一致
        return format_datetime_local(value) or None


class ExamFormPatch(CamelModel):
    """表单局部修改（仅包含可编辑字段，未提供的字段保持不变）"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    title: Optional[str] = None
    description: Optional[str] = None
    instructions: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[int] = None
    passing_marks: Optional[float] = None
    allow_late_submission: Optional[bool] = None
    shuffle_questions: Optional[bool] = None
    show_results_immediately: Optional[bool] = None
    allow_review: Optional[bool] = None
    max_attempts: Optional[int] = None


class ExamUpdate(CamelModel):
    """
    updateExam 请求体
    显式的可选字段结构，None 表示不发送
    """
    title: Optional[str] = None
    description: Optional[str] = None
    instructions: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[int] = None
    total_marks: Optional[float] = None
    passing_marks: Optional[float] = None
    allow_late_submission: Optional[bool] = None
    shuffle_questions: Optional[bool] = None
    show_results_immediately: Optional[bool] = None
    allow_review: Optional[bool] = None
    max_attempts: Optional[int] = None

    @classmethod
    def from_form(cls, form: ExamFormData) -> "ExamUpdate":
        """从表单提取标量字段（科目、班级、类型在编辑模式下不提交）"""
        return cls(
            title=form.title,
            description=form.description,
            instructions=form.instructions,
            start_time=form.start_time,
            end_time=form.end_time,
            duration=form.duration,
            total_marks=form.total_marks,
            passing_marks=form.passing_marks,
            allow_late_submission=form.allow_late_submission,
            shuffle_questions=form.shuffle_questions,
            show_results_immediately=form.show_results_immediately,
            allow_review=form.allow_review,
            max_attempts=form.max_attempts,
        )

    @field_serializer("start_time", "end_time")
    def _serialize_utc(self, value: Optional[datetime]) -> Optional[str]:
        return to_utc_iso(value)

    def to_payload(self) -> Dict[str, Any]:
        """转换为后端请求体"""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# ==================== 请求体 ====================

class SessionCreate(CamelModel):
    """打开编辑会话"""
    exam_id: str = Field(..., min_length=1, description="考试ID")


class QuestionMove(CamelModel):
    """移动题目"""
    direction: Literal["up", "down"]


class SubmitConfirmations(CamelModel):
    """
    提交前的确认答复
    None 表示尚未询问用户，False 表示用户取消
    """
    active_exam: Optional[bool] = None
    existing_attempts: Optional[bool] = None


class SubmitRequest(CamelModel):
    """提交向导"""
    confirmations: SubmitConfirmations = Field(default_factory=SubmitConfirmations)
