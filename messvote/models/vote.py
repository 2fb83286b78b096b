"""
投票与定稿的结果模型
业务层把各种失败转换为带类型的结果，而不是把底层异常抛给调用方
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .menu import MenuState, SlotWinner


class VoteOutcome(str, Enum):
    """投票操作结果"""
    SUCCESS = "success"
    ALREADY_VOTED = "already_voted"
    NOT_VOTED = "not_voted"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    VOTING_CLOSED = "voting_closed"
    ABORTED = "aborted"


class VoteResult(BaseModel):
    """投票/撤票结果"""
    outcome: VoteOutcome
    item_id: int
    votes: Optional[int] = Field(None, description="操作后的票数，失败时为空")
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome == VoteOutcome.SUCCESS


class FinalizeOutcome(str, Enum):
    """定稿/重置结果"""
    SUCCESS = "success"
    CONFLICT = "conflict"
    PERMISSION_DENIED = "permission_denied"
    ABORTED = "aborted"


class FinalizeResult(BaseModel):
    """定稿/重置结果，附带当前状态和胜出菜品"""
    outcome: FinalizeOutcome
    state: Optional[MenuState] = None
    winners: List[SlotWinner] = Field(default_factory=list)
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome == FinalizeOutcome.SUCCESS
