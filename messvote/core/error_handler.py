"""
统一错误处理模块
提供标准化的错误响应格式和错误处理中间件

主要功能：
- 统一的错误响应格式
- 自动异常捕获和日志记录
- HTTP状态码映射
"""

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from .audit import write_audit_log
from .database import DatabaseManager, get_db
from .exceptions import (
    AuthenticationError,
    AuthorizationError,
    BaseApplicationError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class ErrorResponse:
    """标准错误响应格式"""

    def __init__(self, error_code: str, message: str,
                 details: Optional[Dict[str, Any]] = None,
                 http_status: int = 400):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        self.http_status = http_status

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式"""
        return {
            "success": False,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }

    def to_json_response(self) -> JSONResponse:
        """转换为FastAPI JSONResponse"""
        return JSONResponse(
            status_code=self.http_status,
            content=self.to_dict()
        )


class ErrorHandler:
    """全局错误处理器"""

    # 错误代码到HTTP状态码的映射
    ERROR_CODE_STATUS_MAP = {
        "VALIDATION_ERROR": 400,
        "AUTHENTICATION_REQUIRED": 401,
        "PERMISSION_DENIED": 403,
        "RESOURCE_NOT_FOUND": 404,
        "DATABASE_ERROR": 500,
        "TRANSACTION_ABORTED": 503,

        # 身份认证
        "INVALID_TOKEN": 401,
        "TOKEN_EXPIRED": 401,
        "TOKEN_REVOKED": 401,
        "USER_NOT_FOUND": 404,
        "WRONG_CREDENTIAL": 401,
        "TOO_MANY_REQUESTS": 429,
        "EMAIL_IN_USE": 409,
        "WEAK_PASSWORD": 400,
        "INVALID_EMAIL_FORMAT": 400,
        "INVALID_ROLL_NUMBER": 400,

        # 菜单与投票
        "ITEM_NOT_FOUND": 404,
        "ALREADY_VOTED": 409,
        "NOT_VOTED": 409,
        "VOTING_CLOSED": 409,
        "STATE_CONFLICT": 409,
    }

    @classmethod
    def status_for(cls, error: BaseApplicationError) -> int:
        """按错误码取状态码，未登记的按异常类别兜底"""
        if error.error_code in cls.ERROR_CODE_STATUS_MAP:
            return cls.ERROR_CODE_STATUS_MAP[error.error_code]
        if isinstance(error, AuthenticationError):
            return 401
        if isinstance(error, AuthorizationError):
            return 403
        if isinstance(error, NotFoundError):
            return 404
        if isinstance(error, ValidationError):
            return 400
        return 400

    @classmethod
    def handle_application_error(cls, error: BaseApplicationError) -> ErrorResponse:
        """处理应用业务异常"""
        return ErrorResponse(
            error_code=error.error_code,
            message=error.message,
            details=error.details,
            http_status=cls.status_for(error)
        )

    @classmethod
    def handle_http_exception(cls, error: HTTPException) -> ErrorResponse:
        """处理FastAPI HTTP异常"""
        return ErrorResponse(
            error_code="HTTP_ERROR",
            message=str(error.detail),
            details={"status_code": error.status_code},
            http_status=error.status_code
        )

    @classmethod
    def handle_validation_error(cls, error: Exception) -> ErrorResponse:
        """处理Pydantic验证错误"""
        return ErrorResponse(
            error_code="VALIDATION_ERROR",
            message="Request validation failed",
            details={"validation_errors": str(error)},
            http_status=422
        )

    @classmethod
    def handle_unknown_error(cls, error: Exception, db: Optional[DatabaseManager] = None) -> ErrorResponse:
        """处理未知异常"""
        error_details = {
            "type": type(error).__name__,
            "message": str(error),
            "traceback": traceback.format_exc()
        }
        logger.error("Unhandled error: %s", error, exc_info=error)
        cls._log_system_error(db or get_db(), error_details)

        return ErrorResponse(
            error_code="INTERNAL_ERROR",
            message="Internal server error, please try again",
            details={"error_type": type(error).__name__},
            http_status=500
        )

    @classmethod
    def _log_system_error(cls, db: DatabaseManager, error_details: Dict[str, Any]):
        """记录系统错误到数据库"""
        try:
            with db.transaction() as conn:
                write_audit_log(conn, "system_error", None, details=error_details)
        except BaseApplicationError as e:
            # 如果连数据库日志都写不了，就只能留在应用日志里
            logger.error("Failed to log error to database: %s", e.message)


async def application_error_handler(request: Request, exc: BaseApplicationError) -> JSONResponse:
    """应用异常处理中间件"""
    error_response = ErrorHandler.handle_application_error(exc)
    if error_response.http_status >= 500:
        logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.error_code, exc.message)
    return error_response.to_json_response()


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """HTTP异常处理中间件"""
    error_response = ErrorHandler.handle_http_exception(exc)
    return error_response.to_json_response()


async def validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """验证异常处理中间件"""
    error_response = ErrorHandler.handle_validation_error(exc)
    return error_response.to_json_response()


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """通用异常处理中间件"""
    provider = request.app.dependency_overrides.get(get_db, get_db)
    error_response = ErrorHandler.handle_unknown_error(exc, provider())
    return error_response.to_json_response()


def create_success_response(data: Any = None, message: str = "OK") -> Dict[str, Any]:
    """创建标准成功响应"""
    response = {
        "success": True,
        "message": message
    }

    if data is not None:
        response["data"] = data

    return response


def create_paginated_response(items: list, total: int, page: int,
                              page_size: int, message: str = "OK") -> Dict[str, Any]:
    """创建分页响应"""
    return {
        "success": True,
        "message": message,
        "data": {
            "items": items,
            "pagination": {
                "total": total,
                "page": page,
                "page_size": page_size,
                "total_pages": (total + page_size - 1) // page_size
            }
        }
    }
