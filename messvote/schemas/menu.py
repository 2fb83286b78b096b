"""
菜单、投票和菜单状态的请求/响应模式
"""

from pydantic import BaseModel, Field
from typing import Dict, List, Optional

from ..models.menu import MenuItemCreate, MenuItemUpdate, MenuState, RankedMenuItem, SlotWinner
from ..models.vote import FinalizeOutcome, VoteOutcome


class MenuItemCreateRequest(MenuItemCreate):
    """菜品提议请求"""

    model_config = {
        "json_schema_extra": {
            "example": {
                "title": "Masala Dosa",
                "category": "breakfast",
                "day": "monday",
                "dietary_info": "veg",
                "ingredients": "rice batter, potato, onion"
            }
        }
    }


class MenuItemUpdateRequest(MenuItemUpdate):
    """菜品编辑请求"""
    pass


class WeeklyMenuResponse(BaseModel):
    """每周菜单视图"""
    state: MenuState = Field(..., description="菜单状态")
    view: str = Field(..., description="management / voting / finalized")
    days: Dict[str, Dict[str, List[RankedMenuItem]]] = Field(..., description="星期 -> 餐别 -> 菜品")


class VoteResponse(BaseModel):
    """投票/撤票响应"""
    outcome: VoteOutcome = Field(..., description="结果类型")
    item_id: int = Field(..., description="菜品ID")
    votes: Optional[int] = Field(None, description="最新票数")


class MyVotesResponse(BaseModel):
    """我的投票"""
    item_ids: List[int] = Field(default_factory=list, description="已投票的菜品ID")


class MenuStateResponse(BaseModel):
    """菜单状态及胜出菜品"""
    outcome: Optional[FinalizeOutcome] = Field(None, description="操作结果类型")
    state: MenuState = Field(..., description="菜单状态")
    winners: List[SlotWinner] = Field(default_factory=list, description="各餐段胜出菜品")
