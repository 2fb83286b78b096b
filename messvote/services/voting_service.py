"""
投票服务模块
每个学生对每个菜品最多一票，票数与投票记录始终一致

业务规则：
- 只有学生可以投票/撤票
- 菜单定稿后投票关闭
- "检查是否已投 + 票数加一 + 写入投票记录" 在同一事务内完成，全部成功或全部回滚
- 撤票使用同样的事务模式，票数最低为 0
- 重复投票不是错误，而是返回 already_voted 结果
"""

import logging
from datetime import datetime
from typing import List

from ..core.audit import write_audit_log
from ..core.database import MENU_STATE_KEY, DatabaseManager, db_manager
from ..core.exceptions import (
    BaseApplicationError,
    ConcurrencyError,
    DatabaseError,
    ItemNotFoundError,
    NotFoundError,
    PermissionDeniedError,
)
from ..models.menu import RankedMenuItem
from ..models.user import Principal
from ..models.vote import VoteOutcome, VoteResult
from .menu_service import MENU_ITEM_COLUMNS, TALLY_ORDER, menu_item_from_row, rank_items

logger = logging.getLogger(__name__)


class VotingRejected(BaseApplicationError):
    """事务内的软拒绝，回滚后转换为对应的结果"""

    def __init__(self, outcome: VoteOutcome, message: str):
        super().__init__(message, error_code=outcome.value.upper())
        self.outcome = outcome


class VotingService:
    """投票服务类，封装投票协议"""

    def __init__(self, db: DatabaseManager = None):
        self.db = db or db_manager

    def cast_vote(self, principal: Principal, item_id: int) -> VoteResult:
        """
        投票

        Args:
            principal: 当前用户
            item_id: 菜品ID

        Returns:
            VoteResult: success / already_voted / not_found / permission_denied /
            voting_closed / aborted
        """
        return self._run(principal, item_id, self._cast_in_transaction)

    def revoke_vote(self, principal: Principal, item_id: int) -> VoteResult:
        """
        撤票

        Returns:
            VoteResult: success / not_voted / not_found / permission_denied /
            voting_closed / aborted
        """
        return self._run(principal, item_id, self._revoke_in_transaction)

    def _run(self, principal: Principal, item_id: int, operation) -> VoteResult:
        try:
            if not principal.is_student:
                raise PermissionDeniedError("Only students can vote")
            with self.db.transaction() as conn:
                votes = operation(conn, principal, item_id)
        except VotingRejected as e:
            return VoteResult(outcome=e.outcome, item_id=item_id, message=e.message)
        except NotFoundError as e:
            return VoteResult(outcome=VoteOutcome.NOT_FOUND, item_id=item_id, message=e.message)
        except PermissionDeniedError as e:
            return VoteResult(outcome=VoteOutcome.PERMISSION_DENIED, item_id=item_id, message=e.message)
        except ConcurrencyError as e:
            logger.warning("Vote on item %s by %s aborted: %s", item_id, principal.id, e.message)
            return VoteResult(outcome=VoteOutcome.ABORTED, item_id=item_id, message=e.message)
        except DatabaseError as e:
            logger.error("Vote on item %s by %s failed: %s", item_id, principal.id, e.message)
            return VoteResult(outcome=VoteOutcome.ABORTED, item_id=item_id,
                              message="The operation could not be completed, please try again")
        return VoteResult(outcome=VoteOutcome.SUCCESS, item_id=item_id, votes=votes)

    def _ensure_voting_open(self, conn):
        row = conn.execute(
            "SELECT is_finalized FROM menu_state WHERE state_key = ?", [MENU_STATE_KEY]
        ).fetchone()
        if row and row[0]:
            raise VotingRejected(VoteOutcome.VOTING_CLOSED, "Voting is closed, the menu has been finalized")

    def _has_voted(self, conn, user_id: str, item_id: int) -> bool:
        row = conn.execute(
            "SELECT 1 FROM user_votes WHERE user_id = ? AND item_id = ?", [user_id, item_id]
        ).fetchone()
        return row is not None

    def _cast_in_transaction(self, conn, principal: Principal, item_id: int) -> int:
        self._ensure_voting_open(conn)

        if self._has_voted(conn, principal.id, item_id):
            raise VotingRejected(VoteOutcome.ALREADY_VOTED, "You have already voted for this item")

        row = conn.execute("SELECT votes FROM menu_items WHERE item_id = ?", [item_id]).fetchone()
        if row is None:
            raise ItemNotFoundError(item_id)

        conn.execute("UPDATE menu_items SET votes = votes + 1 WHERE item_id = ?", [item_id])
        conn.execute(
            "INSERT INTO user_votes (user_id, item_id, voted_at) VALUES (?, ?, ?)",
            [principal.id, item_id, datetime.now()]
        )
        write_audit_log(conn, "vote_cast", principal.id, principal.id, {"item_id": item_id})
        return row[0] + 1

    def _revoke_in_transaction(self, conn, principal: Principal, item_id: int) -> int:
        self._ensure_voting_open(conn)

        if not self._has_voted(conn, principal.id, item_id):
            raise VotingRejected(VoteOutcome.NOT_VOTED, "You have not voted for this item")

        row = conn.execute("SELECT votes FROM menu_items WHERE item_id = ?", [item_id]).fetchone()
        if row is None:
            raise ItemNotFoundError(item_id)

        votes = max(row[0] - 1, 0)
        conn.execute("UPDATE menu_items SET votes = ? WHERE item_id = ?", [votes, item_id])
        conn.execute(
            "DELETE FROM user_votes WHERE user_id = ? AND item_id = ?", [principal.id, item_id]
        )
        write_audit_log(conn, "vote_revoke", principal.id, principal.id, {"item_id": item_id})
        return votes

    def my_votes(self, principal: Principal) -> List[int]:
        """当前用户已投票的菜品ID"""
        rows = self.db.execute_query(
            "SELECT item_id FROM user_votes WHERE user_id = ? ORDER BY voted_at, item_id",
            [principal.id]
        )
        return [row["item_id"] for row in rows]

    def tally(self, day: str, category: str) -> List[RankedMenuItem]:
        """某天某餐段的票数排名，同票按 item_id 升序"""
        rows = self.db.execute_query(
            f"""
            SELECT {MENU_ITEM_COLUMNS} FROM menu_items
            WHERE day = ? AND category = ?
            ORDER BY {TALLY_ORDER}
            """,
            [getattr(day, "value", day), getattr(category, "value", category)]
        )
        return rank_items([menu_item_from_row(row) for row in rows])
