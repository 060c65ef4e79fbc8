"""
考试编辑模块路由
定义编辑向导 API 接口
"""

from fastapi import APIRouter, Depends

from schemas.response import success

from .exam_client import ExamBackend, get_exam_backend
from .exam_schemas import (
    ExamFormPatch, QuestionData, QuestionMove, SessionCreate, SubmitRequest
)
from .exam_services import ExamEditService, preset_confirmations
from .exam_wizard import SubmitOutcome, WizardController

router = APIRouter()


# ==================== 会话接口 ====================

@router.post("/sessions", summary="打开编辑会话")
async def open_session(
    data: SessionCreate,
    backend: ExamBackend = Depends(get_exam_backend)
):
    """加载考试详情与参考数据，创建向导会话"""
    session = await ExamEditService.open_session(backend, data.exam_id)
    return success(data=session.to_view(), message="Session opened")


@router.get("/sessions/{session_id}", summary="获取会话状态")
async def get_session(session_id: str):
    session = ExamEditService.get_session(session_id)
    return success(data=session.to_view())


@router.delete("/sessions/{session_id}", summary="关闭编辑会话")
async def close_session(session_id: str):
    """离开编辑页时丢弃会话"""
    ExamEditService.get_session(session_id)
    await ExamEditService.close_session(session_id)
    return success(message="Session closed")


# ==================== 表单接口 ====================

@router.patch("/sessions/{session_id}/form", summary="修改表单")
async def update_form(session_id: str, data: ExamFormPatch):
    session = ExamEditService.get_session(session_id)
    session.update_form(data)
    return success(data=session.to_view())


# ==================== 题目接口 ====================

@router.post("/sessions/{session_id}/questions", summary="添加题目")
async def add_question(session_id: str, data: QuestionData):
    session = ExamEditService.get_session(session_id)
    session.add_question(data)
    return success(data=session.to_view(), message="Question added")


@router.put("/sessions/{session_id}/questions/{index}", summary="修改题目")
async def update_question(session_id: str, index: int, data: QuestionData):
    session = ExamEditService.get_session(session_id)
    session.update_question(index, data)
    return success(data=session.to_view(), message="Question updated")


@router.delete("/sessions/{session_id}/questions/{index}", summary="删除题目")
async def delete_question(session_id: str, index: int):
    session = ExamEditService.get_session(session_id)
    session.delete_question(index)
    return success(data=session.to_view(), message="Question deleted")


@router.post("/sessions/{session_id}/questions/{index}/move", summary="移动题目")
async def move_question(session_id: str, index: int, data: QuestionMove):
    session = ExamEditService.get_session(session_id)
    session.move_question(index, data.direction)
    return success(data=session.to_view())


# ==================== 步骤接口 ====================

@router.post("/sessions/{session_id}/next", summary="下一步")
async def next_step(session_id: str):
    """校验未通过时停留在当前步骤，错误信息在 errors 中返回"""
    session = ExamEditService.get_session(session_id)
    advanced = WizardController(session).advance()
    return success(data={"advanced": advanced, **session.to_view()})


@router.post("/sessions/{session_id}/previous", summary="上一步")
async def previous_step(session_id: str):
    session = ExamEditService.get_session(session_id)
    WizardController(session).retreat()
    return success(data=session.to_view())


@router.post("/sessions/{session_id}/submit", summary="提交修改")
async def submit(
    session_id: str,
    data: SubmitRequest = None,
    backend: ExamBackend = Depends(get_exam_backend)
):
    """
    提交向导
    - 已结束的考试返回 409（EXAM_COMPLETED）
    - 需要确认但请求未携带答复时返回 409（EXAM_CONFIRMATION_REQUIRED）
    - 用户取消确认返回 outcome=ABORTED
    """
    data = data or SubmitRequest()
    session = ExamEditService.get_session(session_id)
    result = await ExamEditService.submit(session, backend, preset_confirmations(data.confirmations))
    payload = result.to_dict()
    payload["session"] = None if result.outcome == SubmitOutcome.UPDATED else session.to_view()
    return success(data=payload, message=result.message or "success")
