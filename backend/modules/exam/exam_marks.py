"""
总分汇总
totalMarks 始终由题目分值求和得出，不接受直接输入
"""

from typing import Iterable

from .exam_schemas import ExamFormData, QuestionData


def compute_total_marks(questions: Iterable[QuestionData]) -> float:
    """求和，空列表为 0"""
    return float(sum(q.marks for q in questions))


def apply_total_marks(form: ExamFormData, questions: Iterable[QuestionData]) -> float:
    """重新计算并写回表单"""
    form.total_marks = compute_total_marks(questions)
    return form.total_marks
