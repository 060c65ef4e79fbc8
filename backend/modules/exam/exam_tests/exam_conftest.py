# -*- coding: utf-8 -*-
"""
考试编辑模块测试夹具
提供假后端、考试数据构造器和挂载了假后端的测试客户端
"""

from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from core.errors import ErrorCode
from main import app
from modules.exam.exam_client import BackendError, get_exam_backend, parse_exam_payload
from modules.exam.exam_schemas import ClassInfo, Exam, ExamUpdate, QuestionData, Subject


def make_question_link(index: int, marks: float = 5, text: Optional[str] = None) -> Dict[str, Any]:
    """构造后端返回的考试-题目关联"""
    return {
        "orderIndex": index,
        "marks": marks,
        "question": {
            "id": f"q{index + 1}",
            "questionText": text or f"Question {index + 1}",
            "questionType": "MULTIPLE_CHOICE",
            "marks": marks,
            "options": [
                {"optionText": "A", "isCorrect": True},
                {"optionText": "B", "isCorrect": False},
            ],
        },
    }


def make_exam_payload(
    exam_id: str = "exam-1",
    status: str = "DRAFT",
    attempts: int = 0,
    question_marks: Optional[List[float]] = None,
    **overrides,
) -> Dict[str, Any]:
    """构造后端返回的考试详情"""
    marks = [5, 5] if question_marks is None else question_marks
    payload = {
        "id": exam_id,
        "title": "Midterm Algebra",
        "description": "Chapters 1-4",
        "instructions": "No calculators",
        "startTime": "2025-01-01T10:00:00.000Z",
        "endTime": "2025-01-01T12:00:00.000Z",
        "duration": 60,
        "totalMarks": sum(marks),
        "passingMarks": 4,
        "maxAttempts": 1,
        "status": status,
        "subjectId": "sub-1",
        "classId": "cls-1",
        "type": "MIDTERM",
        "questions": [make_question_link(i, m) for i, m in enumerate(marks)],
        "_count": {"attempts": attempts},
    }
    payload.update(overrides)
    return payload


def make_question(text: str = "New question", marks: float = 5, **overrides) -> QuestionData:
    """构造一道合法的选择题"""
    data = {
        "question_text": text,
        "marks": marks,
        "options": [
            {"option_text": "Yes", "is_correct": True},
            {"option_text": "No", "is_correct": False},
        ],
    }
    data.update(overrides)
    return QuestionData(**data)


class FakeExamBackend:
    """
    内存中的后端实现
    记录所有调用，可按需让指定请求失败
    """

    def __init__(self, payload: Optional[Dict[str, Any]] = None):
        self.payload = payload or make_exam_payload()
        self.subjects = [Subject(id="sub-1", name="Mathematics")]
        self.classes = [ClassInfo(id="cls-1", name="Grade 10 A")]
        self.calls: List[tuple] = []
        self.updates: List[ExamUpdate] = []
        self.removed: List[str] = []
        self.added: List[QuestionData] = []

        self.fail_references = False
        self.fail_update = False
        self.fail_remove_ids: set = set()
        self.fail_add_positions: set = set()  # 第几次添加（从0开始）失败

    def set_exam(self, payload: Dict[str, Any]):
        self.payload = payload

    async def fetch_exam(self, exam_id: str) -> Exam:
        self.calls.append(("fetch_exam", exam_id))
        if exam_id != self.payload["id"]:
            raise BackendError("Exam not found", status_code=404, code=ErrorCode.RESOURCE_NOT_FOUND)
        return parse_exam_payload(self.payload)

    async def fetch_subjects(self) -> List[Subject]:
        self.calls.append(("fetch_subjects",))
        if self.fail_references:
            raise BackendError("Subjects unavailable", status_code=500)
        return list(self.subjects)

    async def fetch_classes(self) -> List[ClassInfo]:
        self.calls.append(("fetch_classes",))
        if self.fail_references:
            raise BackendError("Classes unavailable", status_code=500)
        return list(self.classes)

    async def update_exam(self, exam_id: str, data: ExamUpdate) -> Dict[str, Any]:
        self.calls.append(("update_exam", exam_id))
        if self.fail_update:
            raise BackendError("Update rejected", status_code=400)
        self.updates.append(data)
        return {"id": exam_id}

    async def remove_question(self, exam_id: str, question_id: str) -> None:
        self.calls.append(("remove_question", exam_id, question_id))
        if question_id in self.fail_remove_ids:
            raise BackendError(f"Cannot remove {question_id}", status_code=500)
        self.removed.append(question_id)

    async def add_question(self, exam_id: str, question: QuestionData) -> Dict[str, Any]:
        position = len([c for c in self.calls if c[0] == "add_question"])
        self.calls.append(("add_question", exam_id, question.order_index))
        if position in self.fail_add_positions:
            raise BackendError("Cannot add question", status_code=500)
        self.added.append(question)
        return {"questionId": f"new-{position}"}

    def call_names(self) -> List[str]:
        return [c[0] for c in self.calls]


def confirm_with(*answers: bool):
    """
    按顺序给出确认答复的确认端口
    prompts 记录被询问过的提示
    """
    queue = list(answers)

    async def confirm(prompt):
        confirm.prompts.append(prompt)
        return queue.pop(0)

    confirm.prompts = []
    return confirm


@pytest.fixture
def fake_backend() -> FakeExamBackend:
    return FakeExamBackend()


@pytest_asyncio.fixture
async def exam_client(client, fake_backend):
    """挂载假后端的测试客户端"""
    app.dependency_overrides[get_exam_backend] = lambda: fake_backend
    yield client
    app.dependency_overrides.pop(get_exam_backend, None)
