"""
用户认证路由模块
注册、学生/管理员登录和登出
"""

from fastapi import APIRouter, Depends

from ...config.settings import settings
from ...core.database import DatabaseManager, get_db
from ...core.error_handler import create_success_response
from ...core.security import get_bearer_token
from ...models.user import Principal
from ...schemas.auth import LoginRequest, LoginResponse, SignUpRequest, UserInfo
from ...services.auth_service import AuthService

router = APIRouter()


def _login_response(service: AuthService, principal: Principal) -> dict:
    token = service.issue_token(principal)
    payload = LoginResponse(
        token=token,
        expires_in=settings.jwt_expire_hours * 3600,
        user=UserInfo(
            user_id=principal.id,
            email=principal.email,
            display_name=principal.display_name,
            role=principal.role,
        )
    )
    return payload.model_dump(mode="json")


@router.post("/signup")
def sign_up(req: SignUpRequest, db: DatabaseManager = Depends(get_db)):
    """注册账号，角色由邮箱决定"""
    service = AuthService(db)
    principal = service.sign_up(req.email, req.password, req.display_name)
    return create_success_response(_login_response(service, principal), "Account created")


@router.post("/login")
def login(req: LoginRequest, db: DatabaseManager = Depends(get_db)):
    """邮箱密码登录"""
    service = AuthService(db)
    principal = service.sign_in(req.email, req.password)
    return create_success_response(_login_response(service, principal), "Logged in")


@router.post("/student/login")
def student_login(req: LoginRequest, db: DatabaseManager = Depends(get_db)):
    """
    学生登录
    首次使用学号邮箱登录时自动创建账号
    """
    service = AuthService(db)
    principal = service.student_login(req.email, req.password)
    return create_success_response(_login_response(service, principal), "Welcome!")


@router.post("/management/login")
def management_login(req: LoginRequest, db: DatabaseManager = Depends(get_db)):
    """管理员登录"""
    service = AuthService(db)
    principal = service.management_login(req.email, req.password)
    return create_success_response(_login_response(service, principal), "Login successful")


@router.post("/logout")
def logout(token: str = Depends(get_bearer_token), db: DatabaseManager = Depends(get_db)):
    """登出，当前令牌立即失效"""
    AuthService(db).sign_out(token)
    return create_success_response(message="Logged out")
