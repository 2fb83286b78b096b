"""
用户管理路由模块
"""

from fastapi import APIRouter, Depends

from ...core.database import DatabaseManager, get_db
from ...core.error_handler import create_success_response
from ...core.security import get_current_principal
from ...models.user import Principal, User
from ...schemas.user import UserProfileResponse, UserUpdateRequest
from ...services.auth_service import AuthService

router = APIRouter()


def _profile(user: User) -> dict:
    return UserProfileResponse(
        user_id=user.id,
        email=user.email,
        display_name=user.display_name,
        role=user.role,
        created_at=user.created_at,
    ).model_dump(mode="json")


@router.get("/me")
def get_my_profile(
    principal: Principal = Depends(get_current_principal),
    db: DatabaseManager = Depends(get_db)
):
    """获取当前用户档案信息"""
    user = AuthService(db).get_user(principal.id)
    return create_success_response(_profile(user))


@router.patch("/me")
def update_my_profile(
    req: UserUpdateRequest,
    principal: Principal = Depends(get_current_principal),
    db: DatabaseManager = Depends(get_db)
):
    """修改显示名称"""
    user = AuthService(db).update_profile(principal, req.display_name)
    return create_success_response(_profile(user), "Profile updated")
