"""
题目替换

编辑界面不保留题目身份（重排、修改后无法与原题一一对应），
因此采用整体替换：先逐个删除原有题目，再按 orderIndex 逐个添加当前题目。
请求串行执行；单个请求失败只记录日志并继续，整批不是原子操作。
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from .exam_client import ExamBackend
from .exam_schemas import Question, QuestionData

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationFailure:
    """单个失败项"""
    action: str  # remove / add
    ref: str  # 删除时为题目ID，添加时为 orderIndex
    message: str


@dataclass
class ReconciliationReport:
    """替换结果"""
    removed: List[str] = field(default_factory=list)
    added: int = 0
    failures: List[ReconciliationFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> Dict[str, Any]:
        return {
            "removed": list(self.removed),
            "added": self.added,
            "failures": [
                {"action": f.action, "ref": f.ref, "message": f.message}
                for f in self.failures
            ],
        }


class QuestionReconciler:
    """题目替换器"""

    def __init__(self, backend: ExamBackend):
        self.backend = backend

    async def replace_all(
        self,
        exam_id: str,
        original: Sequence[Question],
        current: Sequence[QuestionData],
    ) -> ReconciliationReport:
        report = ReconciliationReport()

        for question in original:
            try:
                await self.backend.remove_question(exam_id, question.id)
                report.removed.append(question.id)
            except Exception as e:
                logger.warning(f"删除题目失败，已跳过: exam_id={exam_id}, question_id={question.id}, error={e}")
                report.failures.append(ReconciliationFailure("remove", question.id, str(e)))

        for question in sorted(current, key=lambda q: q.order_index):
            try:
                await self.backend.add_question(exam_id, question)
                report.added += 1
            except Exception as e:
                logger.warning(f"添加题目失败，已跳过: exam_id={exam_id}, order_index={question.order_index}, error={e}")
                report.failures.append(ReconciliationFailure("add", str(question.order_index), str(e)))

        logger.info(
            f"题目替换完成: exam_id={exam_id}, 删除 {len(report.removed)}/{len(original)}, "
            f"添加 {report.added}/{len(current)}, 失败 {len(report.failures)}"
        )
        return report
