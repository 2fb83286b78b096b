"""
自定义异常类
提供更精确的错误处理和异常信息
"""

from typing import Any, Dict, Optional


class BaseApplicationError(Exception):
    """应用基础异常类"""

    default_code = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}
        super().__init__(self.message)


class DatabaseError(BaseApplicationError):
    """数据库相关异常"""
    default_code = "DATABASE_ERROR"


class ConcurrencyError(BaseApplicationError):
    """并发冲突，事务被中止，可整体重试"""
    default_code = "TRANSACTION_ABORTED"


class AuthenticationError(BaseApplicationError):
    """认证相关异常"""
    default_code = "AUTHENTICATION_REQUIRED"


class AuthorizationError(BaseApplicationError):
    """授权相关异常"""
    default_code = "PERMISSION_DENIED"


class PermissionDeniedError(AuthorizationError):
    """权限拒绝错误"""
    default_code = "PERMISSION_DENIED"


class ValidationError(BaseApplicationError):
    """数据验证异常"""
    default_code = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """资源不存在"""
    default_code = "RESOURCE_NOT_FOUND"


class ItemNotFoundError(NotFoundError):
    """菜品不存在"""
    default_code = "ITEM_NOT_FOUND"

    def __init__(self, item_id: int):
        super().__init__(f"Menu item {item_id} not found", details={"item_id": item_id})


# 身份认证相关错误，对应登录页需要区分的几种情况

class UserNotFoundError(AuthenticationError):
    """账号不存在"""
    default_code = "USER_NOT_FOUND"


class WrongCredentialError(AuthenticationError):
    """邮箱或密码错误"""
    default_code = "WRONG_CREDENTIAL"


class TooManyRequestsError(AuthenticationError):
    """连续登录失败次数过多"""
    default_code = "TOO_MANY_REQUESTS"


class EmailInUseError(ValidationError):
    """邮箱已被注册"""
    default_code = "EMAIL_IN_USE"


class WeakPasswordError(ValidationError):
    """密码强度不足"""
    default_code = "WEAK_PASSWORD"
