"""
用户相关的请求/响应模式
"""

from datetime import datetime
from pydantic import BaseModel, Field
from typing import Optional

from ..models.user import Role


class UserProfileResponse(BaseModel):
    """用户档案响应"""
    user_id: str = Field(..., description="用户ID")
    email: str = Field(..., description="邮箱")
    display_name: Optional[str] = Field(None, description="显示名称")
    role: Role = Field(..., description="角色")
    created_at: Optional[datetime] = Field(None, description="注册时间")


class UserUpdateRequest(BaseModel):
    """用户信息更新请求"""
    display_name: str = Field(..., min_length=1, max_length=100, description="显示名称")
