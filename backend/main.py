"""
LMS 管理端考试编辑服务 - 主入口
基于FastAPI，代理 LMS 后端接口并承载考试编辑向导

功能：
- 请求日志中间件
- 健康检查端点
- 标准化错误处理
- 编辑会话生命周期管理
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import get_settings
from core.errors import ERROR_MESSAGES, ErrorCode, register_exception_handlers
from core.event_handlers import register_event_handlers
from core.events import Event, Events, event_bus
from core.middleware import RequestLoggingMiddleware
from modules.exam.exam_client import create_http_client
from modules.exam.exam_router import router as exam_router
from modules.exam.exam_services import wizard_sessions
from routers import health

settings = get_settings()

# 配置日志
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# 减少第三方库的日志输出
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # ==================== 启动阶段 ====================
    current_settings = get_settings()
    logger.info(f"🚀 正在启动 {current_settings.app_name} v{current_settings.app_version}...")

    app.state.lms_http = create_http_client()
    logger.info(f"✅ LMS 后端地址: {current_settings.lms_api_root}")

    register_event_handlers()

    await event_bus.publish(Event(name=Events.SYSTEM_STARTUP, source="kernel"))
    logger.info(f"🎉 {current_settings.app_name} 启动完成!")

    yield

    # ==================== 关闭阶段 ====================
    logger.info("🛑 系统关闭中...")
    await event_bus.publish(Event(name=Events.SYSTEM_SHUTDOWN, source="kernel"))
    event_bus.clear()
    wizard_sessions.clear()
    http = getattr(app.state, "lms_http", None)
    if http is not None:
        await http.aclose()
        app.state.lms_http = None
    logger.info("👋 系统已关闭")


# ==================== 创建应用 ====================
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="考试编辑向导服务",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)


# ==================== 中间件配置（顺序重要，后添加的先执行） ====================

# 1. CORS 跨域配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)

# 2. 请求日志中间件
app.add_middleware(
    RequestLoggingMiddleware,
    slow_request_threshold=1.0  # 超过1秒的请求记录为慢请求
)


# ==================== 异常处理器 ====================
register_exception_handlers(app)

# 全局未捕获异常处理
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """全局异常捕获"""
    logger.error(f"未处理异常: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "code": int(ErrorCode.INTERNAL_ERROR),
            "message": ERROR_MESSAGES[ErrorCode.INTERNAL_ERROR],
            "data": None
        }
    )


# ==================== 注册路由 ====================
app.include_router(exam_router, prefix="/api/v1/exam", tags=["考试编辑"])
app.include_router(health.router)


@app.get("/api", include_in_schema=False)
async def api_info():
    """API 信息"""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/api/docs",
        "health": "/health",
        "backend": settings.lms_api_root,
    }


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.debug)
