"""
用户相关数据模型
"""

from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional
from .base import BaseEntity, TimestampMixin


class Role(str, Enum):
    """用户角色，注册时由邮箱解析一次"""
    STUDENT = "student"
    MANAGEMENT = "management"


class Principal(BaseModel):
    """已认证的用户身份"""
    id: str = Field(..., description="用户ID")
    email: str = Field(..., description="邮箱")
    display_name: Optional[str] = Field(None, description="显示名称")
    role: Role = Field(..., description="角色")

    @property
    def is_management(self) -> bool:
        return self.role == Role.MANAGEMENT

    @property
    def is_student(self) -> bool:
        return self.role == Role.STUDENT


class User(BaseEntity, TimestampMixin):
    """用户完整模型（不含密码哈希）"""
    id: str = Field(..., description="用户ID")
    email: str = Field(..., description="邮箱")
    display_name: Optional[str] = Field(None, max_length=100, description="显示名称")
    role: Role = Field(..., description="角色")

    def to_principal(self) -> Principal:
        return Principal(id=self.id, email=self.email, display_name=self.display_name, role=self.role)
