"""
菜单相关数据模型
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .base import BaseEntity, TimestampMixin


class MenuCategory(str, Enum):
    """餐别"""
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    SNACK = "snack"
    DINNER = "dinner"


class DayOfWeek(str, Enum):
    """星期"""
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"


class DietaryInfo(str, Enum):
    """饮食标识"""
    VEG = "veg"
    NON_VEG = "non-veg"
    VEGAN = "vegan"
    VEGETARIAN = "vegetarian"
    NONE = "none"


# 分组展示顺序
DAY_ORDER = [d.value for d in DayOfWeek]
CATEGORY_ORDER = [c.value for c in MenuCategory]


def _split_ingredients(v):
    if v is None:
        return v
    if isinstance(v, str):
        return [part.strip() for part in v.split(",") if part.strip()]
    return [str(part).strip() for part in v if str(part).strip()]


class MenuItemBase(BaseModel):
    """菜品基础字段"""
    title: str = Field(..., min_length=1, max_length=200, description="菜名")
    category: MenuCategory = Field(..., description="餐别")
    day: DayOfWeek = Field(..., description="星期")
    dietary_info: DietaryInfo = Field(..., description="饮食标识")
    ingredients: List[str] = Field(default_factory=list, description="配料")
    image_url: Optional[str] = Field(None, description="图片地址")
    image_hint: Optional[str] = Field(None, max_length=100, description="图片提示")

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be blank")
        return v

    @field_validator("ingredients", mode="before")
    @classmethod
    def parse_ingredients(cls, v):
        """支持逗号分隔的字符串"""
        return _split_ingredients(v) or []


class MenuItemCreate(MenuItemBase):
    """菜品创建模型"""
    pass


class MenuItemUpdate(BaseModel):
    """菜品更新模型，票数不可在此修改"""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    category: Optional[MenuCategory] = None
    day: Optional[DayOfWeek] = None
    dietary_info: Optional[DietaryInfo] = None
    ingredients: Optional[List[str]] = None
    image_url: Optional[str] = None
    image_hint: Optional[str] = Field(None, max_length=100)

    @field_validator("ingredients", mode="before")
    @classmethod
    def parse_ingredients(cls, v):
        return _split_ingredients(v)


class MenuItem(MenuItemBase, BaseEntity, TimestampMixin):
    """菜品完整模型"""
    item_id: int = Field(..., description="菜品ID")
    votes: int = Field(0, ge=0, description="票数")
    created_by: Optional[str] = Field(None, description="创建者")


class RankedMenuItem(MenuItem):
    """带排名和个人投票标记的菜品视图"""
    rank: Optional[int] = Field(None, description="同一餐段内的名次")
    my_vote: Optional[bool] = Field(None, description="当前学生是否已投票")
    finalized: bool = Field(False, description="是否为定稿菜单中的胜出菜品")


class MenuState(BaseEntity):
    """每周菜单状态"""
    is_finalized: bool = Field(False, description="是否已定稿")
    finalized_at: Optional[datetime] = None
    finalized_by: Optional[str] = None
    auto_finalized_week: Optional[str] = Field(None, description="最近一次自动定稿处理的ISO周")
    updated_at: Optional[datetime] = None


class SlotWinner(BaseModel):
    """某一天某一餐段的胜出菜品"""
    day: DayOfWeek
    category: MenuCategory
    item: MenuItem

    model_config = {"use_enum_values": True}
