"""
LMS 后端接口客户端
封装考试编辑所需的后端调用，统一解析 {success, data, message} 响应格式
"""

import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx
from fastapi import Request

from core.config import get_settings
from core.errors import AppException, ErrorCode

from .exam_schemas import ClassInfo, Exam, Question, QuestionData, Subject, ExamUpdate

logger = logging.getLogger(__name__)


class ExamBackend(Protocol):
    """考试编辑依赖的后端接口"""

    async def fetch_exam(self, exam_id: str) -> Exam: ...

    async def fetch_subjects(self) -> List[Subject]: ...

    async def fetch_classes(self) -> List[ClassInfo]: ...

    async def update_exam(self, exam_id: str, data: ExamUpdate) -> Dict[str, Any]: ...

    async def remove_question(self, exam_id: str, question_id: str) -> None: ...

    async def add_question(self, exam_id: str, question: QuestionData) -> Dict[str, Any]: ...


class BackendError(AppException):
    """后端请求失败（网络错误或业务失败），不自动重试"""

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        code: int = ErrorCode.EXTERNAL_API_ERROR
    ):
        self.status_code = status_code
        super().__init__(
            code=code,
            message=message,
            data={"status": status_code} if status_code else None
        )


# ==================== 响应解析 ====================

def _question_from_link(link: Dict[str, Any], position: int) -> Question:
    """后端题目嵌套在考试-题目关联中：{orderIndex, marks, question: {...}}"""
    raw = link.get("question") or link
    file_types = raw.get("acceptedFileTypes")
    return Question(
        id=str(raw.get("id") or link.get("questionId")),
        question_text=raw.get("questionText") or "",
        question_type=raw.get("questionType") or "MULTIPLE_CHOICE",
        marks=raw.get("marks", link.get("marks", 0)) or 0,
        negative_marks=raw.get("negativeMarks") or 0,
        explanation=raw.get("explanation"),
        allow_multiple_files=bool(raw.get("allowMultipleFiles", False)),
        max_files=raw.get("maxFiles") or 1,
        accepted_file_types=file_types if isinstance(file_types, str) else None,
        max_file_size_mb=raw.get("maxFileSizeMB") or 10,
        is_optional=bool(raw.get("isOptional", False)),
        section_name=raw.get("sectionName"),
        order_index=link.get("orderIndex", position),
        options=[
            {"option_text": opt.get("optionText", ""), "is_correct": bool(opt.get("isCorrect"))}
            for opt in raw.get("options") or []
        ],
    )


def parse_exam_payload(payload: Dict[str, Any]) -> Exam:
    """
    解析考试详情

    作答次数取自 _count.attempts（缺省为 0）；题目按 orderIndex 排序
    """
    counts = payload.get("_count") or {}
    attempt_count = counts.get("attempts", payload.get("attemptCount")) or 0

    links = payload.get("questions") or []
    questions = [_question_from_link(link, i) for i, link in enumerate(links)]
    questions.sort(key=lambda q: q.order_index)

    data = {k: v for k, v in payload.items() if k not in ("questions", "_count")}
    data["attemptCount"] = attempt_count
    data["questions"] = questions
    return Exam.model_validate(data)


def _unwrap(response: httpx.Response) -> Any:
    """拆包响应，失败时抛出 BackendError"""
    try:
        body = response.json()
    except ValueError:
        body = None

    if response.status_code >= 400:
        message = body.get("message") if isinstance(body, dict) else None
        code = ErrorCode.RESOURCE_NOT_FOUND if response.status_code == 404 else ErrorCode.EXTERNAL_API_ERROR
        raise BackendError(message, status_code=response.status_code, code=code)

    if response.status_code == 204 or body is None:
        return None

    if isinstance(body, dict) and "success" in body:
        if not body.get("success"):
            raise BackendError(body.get("message"), status_code=response.status_code)
        return body.get("data")
    return body


class LmsApiClient:
    """
    LMS 后端客户端

    共享同一个 httpx.AsyncClient，每个请求携带调用方的授权头
    """

    EXAMS_URL = "/exams"

    def __init__(self, http: httpx.AsyncClient, authorization: Optional[str] = None):
        self.http = http
        self.authorization = authorization

    async def _request(self, method: str, url: str, json: Any = None) -> Any:
        headers = {"Authorization": self.authorization} if self.authorization else None
        try:
            response = await self.http.request(method, url, json=json, headers=headers)
        except httpx.TimeoutException as e:
            logger.error(f"后端请求超时: {method} {url} | {e}")
            raise BackendError(code=ErrorCode.REQUEST_TIMEOUT)
        except httpx.HTTPError as e:
            logger.error(f"后端连接失败: {method} {url} | {e}")
            raise BackendError(code=ErrorCode.NETWORK_ERROR)

        try:
            return _unwrap(response)
        except BackendError as e:
            logger.error(f"后端请求失败: {method} {url} | {response.status_code} | {e.message}")
            raise

    async def fetch_exam(self, exam_id: str) -> Exam:
        data = await self._request("GET", f"{self.EXAMS_URL}/{exam_id}")
        if not data:
            raise BackendError("Exam not found", status_code=404, code=ErrorCode.RESOURCE_NOT_FOUND)
        return parse_exam_payload(data)

    async def fetch_subjects(self) -> List[Subject]:
        data = await self._request("GET", "/subjects")
        return [Subject.model_validate(item) for item in data or []]

    async def fetch_classes(self) -> List[ClassInfo]:
        data = await self._request("GET", "/classes")
        return [ClassInfo.model_validate(item) for item in data or []]

    async def update_exam(self, exam_id: str, data: ExamUpdate) -> Dict[str, Any]:
        return await self._request("PUT", f"{self.EXAMS_URL}/{exam_id}", json=data.to_payload()) or {}

    async def remove_question(self, exam_id: str, question_id: str) -> None:
        await self._request("DELETE", f"{self.EXAMS_URL}/{exam_id}/questions/{question_id}")

    async def add_question(self, exam_id: str, question: QuestionData) -> Dict[str, Any]:
        return await self._request("POST", f"{self.EXAMS_URL}/{exam_id}/questions", json=question.to_payload()) or {}


# ==================== 依赖注入 ====================

def create_http_client() -> httpx.AsyncClient:
    """按配置创建共享的 HTTP 客户端"""
    settings = get_settings()
    return httpx.AsyncClient(base_url=settings.lms_api_root, timeout=settings.lms_api_timeout)


def get_exam_backend(request: Request) -> ExamBackend:
    """
    FastAPI 依赖：为当前请求构造后端客户端
    优先转发调用方的 Authorization 头，否则使用配置的服务令牌
    """
    state = request.app.state
    if getattr(state, "lms_http", None) is None:
        state.lms_http = create_http_client()

    authorization = request.headers.get("Authorization")
    if not authorization:
        token = get_settings().lms_api_token
        authorization = f"Bearer {token}" if token else None
    return LmsApiClient(state.lms_http, authorization)
