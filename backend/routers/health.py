"""
健康检查路由
提供服务存活状态
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter
from pydantic import BaseModel

from core.config import get_settings
from modules.exam.exam_services import wizard_sessions

logger = logging.getLogger(__name__)

router = APIRouter(tags=["健康检查"])

# 服务启动时间
_start_time = datetime.now(timezone.utc)


class HealthStatus(BaseModel):
    """健康状态响应"""
    status: str
    version: str
    timestamp: str
    uptime_seconds: float
    active_sessions: int


@router.get("/health", response_model=HealthStatus, summary="健康检查")
async def health_check():
    now = datetime.now(timezone.utc)
    return HealthStatus(
        status="healthy",
        version=get_settings().app_version,
        timestamp=now.isoformat(),
        uptime_seconds=round((now - _start_time).total_seconds(), 2),
        active_sessions=len(wizard_sessions),
    )
