"""
认证相关的请求/响应模式
"""

from pydantic import BaseModel, Field
from typing import Optional

from ..models.user import Role


class LoginRequest(BaseModel):
    """登录请求"""
    email: str = Field(..., min_length=3, max_length=254, description="邮箱")
    password: str = Field(..., min_length=1, max_length=128, description="密码")

    model_config = {
        "json_schema_extra": {
            "example": {
                "email": "23cs001@psgitech.ac.in",
                "password": "password"
            }
        }
    }


class SignUpRequest(LoginRequest):
    """注册请求"""
    display_name: Optional[str] = Field(None, max_length=100, description="显示名称")


class UserInfo(BaseModel):
    """用户信息"""
    user_id: str = Field(description="用户ID")
    email: str = Field(description="邮箱")
    display_name: Optional[str] = Field(None, description="显示名称")
    role: Role = Field(description="角色")


class LoginResponse(BaseModel):
    """登录响应"""
    token: str = Field(description="JWT访问令牌")
    token_type: str = Field(default="Bearer", description="令牌类型")
    expires_in: int = Field(description="过期时间(秒)")
    user: UserInfo = Field(description="用户信息")
