"""
标准错误码体系
提供统一的错误码定义和异常处理
"""

from typing import Optional, Any, Dict
from enum import IntEnum
from fastapi import status
from fastapi.responses import JSONResponse


class ErrorCode(IntEnum):
    """
    标准错误码

    错误码规范：
    - 0: 成功
    - 1xxx: 系统级错误
    - 3xxx: 业务通用错误
    - 4xxx: 模块级错误（各模块自定义）
    - 5xxx: 第三方服务错误
    """

    # ==================== 成功 ====================
    SUCCESS = 0

    # ==================== 系统级错误 (1xxx) ====================
    INTERNAL_ERROR = 1000           # 服务器内部错误
    CONFIG_ERROR = 1003             # 配置错误
    SERVICE_UNAVAILABLE = 1004      # 服务不可用
    REQUEST_TIMEOUT = 1006          # 请求超时
    NETWORK_ERROR = 1008            # 网络错误

    # ==================== 认证/授权错误 (2xxx) ====================
    UNAUTHORIZED = 2001             # 未认证（未登录）
    PERMISSION_DENIED = 2004        # 权限不足

    # ==================== 业务通用错误 (3xxx) ====================
    VALIDATION_ERROR = 3001         # 参数验证失败
    RESOURCE_NOT_FOUND = 3002       # 资源不存在
    RESOURCE_CONFLICT = 3004        # 资源冲突
    OPERATION_FAILED = 3005         # 操作失败
    INVALID_OPERATION = 3006        # 无效操作

    # ==================== 模块级错误 (4xxx) ====================
    # 4200-4299: 考试编辑模块
    EXAM_COMPLETED = 4201                   # 已结束的考试不可编辑
    EXAM_CONFIRMATION_REQUIRED = 4202       # 需要用户确认
    EXAM_QUESTIONS_READ_ONLY = 4203         # 已有作答记录，题目只读
    WIZARD_SESSION_NOT_FOUND = 4204         # 编辑会话不存在或已过期
    EXAM_QUESTION_INVALID = 4205            # 题目内容不合法

    # ==================== 第三方服务错误 (5xxx) ====================
    EXTERNAL_API_ERROR = 5001       # 外部 API 错误


# 错误码对应的默认消息（面向最终用户，与前端文案一致）
ERROR_MESSAGES: Dict[int, str] = {
    ErrorCode.SUCCESS: "Success",

    # 系统级
    ErrorCode.INTERNAL_ERROR: "Internal server error, please try again later",
    ErrorCode.CONFIG_ERROR: "System configuration error",
    ErrorCode.SERVICE_UNAVAILABLE: "Service temporarily unavailable",
    ErrorCode.REQUEST_TIMEOUT: "Request timed out",
    ErrorCode.NETWORK_ERROR: "Network error",

    # 认证/授权
    ErrorCode.UNAUTHORIZED: "Please log in first",
    ErrorCode.PERMISSION_DENIED: "You do not have permission to perform this action",

    # 业务通用
    ErrorCode.VALIDATION_ERROR: "Validation failed",
    ErrorCode.RESOURCE_NOT_FOUND: "The requested resource was not found",
    ErrorCode.RESOURCE_CONFLICT: "Resource conflict",
    ErrorCode.OPERATION_FAILED: "Operation failed",
    ErrorCode.INVALID_OPERATION: "Invalid operation",

    # 考试编辑模块
    ErrorCode.EXAM_COMPLETED: "Cannot edit a completed exam",
    ErrorCode.EXAM_CONFIRMATION_REQUIRED: "Confirmation required",
    ErrorCode.EXAM_QUESTIONS_READ_ONLY: "Question editing is restricted because this exam has student attempts",
    ErrorCode.WIZARD_SESSION_NOT_FOUND: "Editing session not found or expired",
    ErrorCode.EXAM_QUESTION_INVALID: "Invalid question",

    # 第三方服务
    ErrorCode.EXTERNAL_API_ERROR: "Backend request failed",
}

# 错误码对应的 HTTP 状态码
ERROR_HTTP_STATUS: Dict[int, int] = {
    ErrorCode.SUCCESS: status.HTTP_200_OK,

    # 系统级 -> 500
    ErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.CONFIG_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.SERVICE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.REQUEST_TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    ErrorCode.NETWORK_ERROR: status.HTTP_502_BAD_GATEWAY,

    # 认证/授权 -> 401/403
    ErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,

    # 业务通用 -> 400/404/409
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.RESOURCE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.RESOURCE_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.OPERATION_FAILED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_OPERATION: status.HTTP_400_BAD_REQUEST,

    # 考试编辑模块
    ErrorCode.EXAM_COMPLETED: status.HTTP_409_CONFLICT,
    ErrorCode.EXAM_CONFIRMATION_REQUIRED: status.HTTP_409_CONFLICT,
    ErrorCode.EXAM_QUESTIONS_READ_ONLY: status.HTTP_409_CONFLICT,
    ErrorCode.WIZARD_SESSION_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.EXAM_QUESTION_INVALID: status.HTTP_400_BAD_REQUEST,

    # 第三方服务 -> 502
    ErrorCode.EXTERNAL_API_ERROR: status.HTTP_502_BAD_GATEWAY,
}


class AppException(Exception):
    """
    应用异常基类

    用于抛出业务异常，包含错误码和详细信息

    Usage:
        raise AppException(ErrorCode.RESOURCE_NOT_FOUND, "Exam not found")
        raise AppException(ErrorCode.VALIDATION_ERROR, data={"field": "title", "error": "required"})
    """

    def __init__(
        self,
        code: int = ErrorCode.INTERNAL_ERROR,
        message: Optional[str] = None,
        data: Any = None
    ):
        self.code = code
        self.message = message or ERROR_MESSAGES.get(code, "Unknown error")
        self.data = data
        self.http_status = ERROR_HTTP_STATUS.get(code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        super().__init__(self.message)

    def to_response(self) -> JSONResponse:
        """转换为 JSONResponse"""
        return JSONResponse(
            status_code=self.http_status,
            content=self.to_dict()
        )

    def to_dict(self) -> dict:
        """转换为字典"""
        return {
            "code": int(self.code),
            "message": self.message,
            "data": self.data
        }


class NotFoundException(AppException):
    """资源不存在异常"""

    def __init__(self, resource: str = "Resource", resource_id: Any = None, code: int = ErrorCode.RESOURCE_NOT_FOUND):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} (ID: {resource_id}) not found"
        super().__init__(code=code, message=message)


class BusinessException(AppException):
    """业务异常"""

    def __init__(
        self,
        code: int = ErrorCode.OPERATION_FAILED,
        message: Optional[str] = None,
        data: Any = None
    ):
        super().__init__(code=code, message=message, data=data)


# ==================== 异常处理器 ====================

async def app_exception_handler(request, exc: AppException):
    """AppException 异常处理器"""
    return exc.to_response()


def register_exception_handlers(app):
    """
    注册异常处理器

    在 main.py 中调用：
        from core.errors import register_exception_handlers
        register_exception_handlers(app)
    """
    from fastapi.exceptions import RequestValidationError
    from starlette.exceptions import HTTPException as StarletteHTTPException

    app.add_exception_handler(AppException, app_exception_handler)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request, exc: RequestValidationError):
        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"]
            })

        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "code": int(ErrorCode.VALIDATION_ERROR),
                "message": ERROR_MESSAGES[ErrorCode.VALIDATION_ERROR],
                "data": {"errors": errors}
            }
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request, exc: StarletteHTTPException):
        # 映射 HTTP 状态码到业务错误码
        code_mapping = {
            401: ErrorCode.UNAUTHORIZED,
            403: ErrorCode.PERMISSION_DENIED,
            404: ErrorCode.RESOURCE_NOT_FOUND,
            405: ErrorCode.INVALID_OPERATION,
            500: ErrorCode.INTERNAL_ERROR,
        }

        code = code_mapping.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
        message = str(exc.detail) if exc.detail else ERROR_MESSAGES.get(code, "Request failed")

        return JSONResponse(
            status_code=exc.status_code,
            content={
                "code": int(code),
                "message": message,
                "data": None
            }
        )

