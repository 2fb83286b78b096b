"""
安全相关功能
JWT 令牌签发与校验，以及 FastAPI 的身份/角色依赖
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..config.settings import settings
from ..models.user import Principal, Role
from .database import DatabaseManager, get_db
from .exceptions import AuthenticationError, PermissionDeniedError

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class SecurityManager:
    """安全管理器"""

    def create_jwt_token(self, principal: Principal, additional_claims: Dict[str, Any] = None) -> str:
        """创建JWT token"""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": principal.id,
            "email": principal.email,
            "role": Role(principal.role).value,
            "jti": uuid.uuid4().hex,
            "iat": now,
            "exp": now + timedelta(hours=settings.jwt_expire_hours),
        }
        if additional_claims:
            payload.update(additional_claims)
        return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)

    def decode_jwt_token(self, token: str) -> Dict[str, Any]:
        """解码JWT token"""
        try:
            return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired", error_code="TOKEN_EXPIRED")
        except jwt.InvalidTokenError as e:
            raise AuthenticationError(f"Invalid token: {e}", error_code="INVALID_TOKEN")

    def resolve_principal(self, db: DatabaseManager, token: str) -> Principal:
        """校验令牌（含登出吊销）并加载对应用户"""
        payload = self.decode_jwt_token(token)
        user_id = payload.get("sub")
        jti = payload.get("jti")
        if not user_id or not jti:
            raise AuthenticationError("Token missing subject", error_code="INVALID_TOKEN")

        revoked = db.execute_one("SELECT jti FROM revoked_tokens WHERE jti = ?", [jti])
        if revoked:
            raise AuthenticationError("Token has been revoked", error_code="TOKEN_REVOKED")

        user = db.execute_one(
            "SELECT id, email, display_name, role FROM users WHERE id = ?",
            [user_id]
        )
        if not user:
            raise AuthenticationError("User no longer exists", error_code="INVALID_TOKEN")
        return Principal(**user)


# 全局安全管理器实例
security_manager = SecurityManager()


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> str:
    """从Authorization header中提取bearer token"""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing bearer token")
    return credentials.credentials


def get_current_principal(
    token: str = Depends(get_bearer_token),
    db: DatabaseManager = Depends(get_db)
) -> Principal:
    """当前登录用户"""
    return security_manager.resolve_principal(db, token)


def require_management(principal: Principal = Depends(get_current_principal)) -> Principal:
    """要求管理员角色"""
    if not principal.is_management:
        raise PermissionDeniedError("Management access required")
    return principal
