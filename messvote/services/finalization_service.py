"""
菜单定稿服务
每周菜单状态机：open <-> finalized

- 定稿：在同一事务内读取一致的票数快照计算各餐段胜出菜品，并把状态置为已定稿
- 重置：重新开放投票，不改动菜品和票数
- 胜出菜品不单独存储，每次读取时按当前票数计算
- 自动定稿：每周指定的星期触发一次，用 ISO 周号做条件写入，保证同一周只处理一次
"""

import logging
from datetime import datetime
from typing import List, Optional
from zoneinfo import ZoneInfo

from ..config.settings import settings
from ..core.audit import write_audit_log
from ..core.database import MENU_STATE_KEY, DatabaseManager, db_manager, rows_to_dicts
from ..core.exceptions import BaseApplicationError, ConcurrencyError, DatabaseError, PermissionDeniedError
from ..models.menu import CATEGORY_ORDER, DAY_ORDER, MenuState, SlotWinner
from ..models.user import Principal
from ..models.vote import FinalizeOutcome, FinalizeResult
from .menu_service import MENU_ITEM_COLUMNS, TALLY_ORDER, menu_item_from_row

logger = logging.getLogger(__name__)

STATE_COLUMNS = "is_finalized, finalized_at, finalized_by, auto_finalized_week, updated_at"
WINNER_QUERY = f"SELECT {MENU_ITEM_COLUMNS} FROM menu_items ORDER BY {TALLY_ORDER}"


def iso_week_key(moment: datetime) -> str:
    """ISO 周标识，例如 2026-W43"""
    year, week, _ = moment.isocalendar()
    return f"{year}-W{week:02d}"


class StateConflict(BaseApplicationError):
    """状态已是目标状态"""
    default_code = "STATE_CONFLICT"


class FinalizationService:
    """菜单定稿服务"""

    def __init__(self, db: DatabaseManager = None):
        self.db = db or db_manager

    def get_state(self) -> MenuState:
        """当前菜单状态"""
        row = self.db.execute_one(
            f"SELECT {STATE_COLUMNS} FROM menu_state WHERE state_key = ?", [MENU_STATE_KEY]
        )
        return MenuState(**row) if row else MenuState()

    def winners(self) -> List[SlotWinner]:
        """当前票数下每个餐段的胜出菜品"""
        return self._winners_from_rows(self.db.execute_query(WINNER_QUERY))

    def _compute_winners(self, conn) -> List[SlotWinner]:
        """事务内读取快照计算胜出菜品"""
        return self._winners_from_rows(rows_to_dicts(conn.execute(WINNER_QUERY)))

    def _winners_from_rows(self, rows) -> List[SlotWinner]:
        # 已按 票数降序、item_id 升序 排好，每个餐段第一条即胜出者
        best = {}
        for row in rows:
            best.setdefault((row["day"], row["category"]), row)

        winners = []
        for day in DAY_ORDER:
            for category in CATEGORY_ORDER:
                row = best.get((day, category))
                if row is not None:
                    winners.append(SlotWinner(day=day, category=category, item=menu_item_from_row(row)))
        return winners

    def _read_state(self, conn) -> MenuState:
        cursor = conn.execute(
            f"SELECT {STATE_COLUMNS} FROM menu_state WHERE state_key = ?", [MENU_STATE_KEY]
        )
        rows = rows_to_dicts(cursor)
        return MenuState(**rows[0]) if rows else MenuState()

    def finalize(self, principal: Optional[Principal]) -> FinalizeResult:
        """
        定稿本周菜单

        Args:
            principal: 操作的管理员；为 None 时表示自动定稿触发

        Returns:
            FinalizeResult: success / conflict（已是定稿状态）/ permission_denied / aborted
        """
        try:
            if principal is not None and not principal.is_management:
                raise PermissionDeniedError("Management access required")
            actor_id = principal.id if principal else None
            with self.db.transaction() as conn:
                winners = self._finalize_in_transaction(conn, actor_id)
                state = self._read_state(conn)
        except StateConflict as e:
            return FinalizeResult(outcome=FinalizeOutcome.CONFLICT, state=self.get_state(),
                                  winners=self.winners(), message=e.message)
        except PermissionDeniedError as e:
            return FinalizeResult(outcome=FinalizeOutcome.PERMISSION_DENIED, message=e.message)
        except (ConcurrencyError, DatabaseError) as e:
            logger.warning("Finalize aborted: %s", e.message)
            return FinalizeResult(outcome=FinalizeOutcome.ABORTED, message=e.message)

        logger.info("Weekly menu finalized by %s with %d winners", actor_id or "scheduler", len(winners))
        return FinalizeResult(outcome=FinalizeOutcome.SUCCESS, state=state, winners=winners,
                              message="The menu for the week has been locked in")

    def _finalize_in_transaction(self, conn, actor_id: Optional[str]) -> List[SlotWinner]:
        state = self._read_state(conn)
        if state.is_finalized:
            raise StateConflict("The menu is already finalized")

        winners = self._compute_winners(conn)
        now = datetime.now()
        conn.execute(
            """
            UPDATE menu_state
            SET is_finalized = TRUE, finalized_at = ?, finalized_by = ?, updated_at = ?
            WHERE state_key = ? AND is_finalized = FALSE
            """,
            [now, actor_id, now, MENU_STATE_KEY]
        )
        write_audit_log(conn, "menu_finalize", actor_id, details={
            "winners": [
                {"day": w.day, "category": w.category, "item_id": w.item.item_id, "votes": w.item.votes}
                for w in winners
            ]
        })
        return winners

    def reset(self, principal: Principal) -> FinalizeResult:
        """
        重置菜单状态，重新开放投票

        Returns:
            FinalizeResult: success / conflict（已是开放状态）/ permission_denied / aborted
        """
        try:
            if not principal.is_management:
                raise PermissionDeniedError("Management access required")
            with self.db.transaction() as conn:
                state = self._read_state(conn)
                if not state.is_finalized:
                    raise StateConflict("Voting is already open")
                conn.execute(
                    """
                    UPDATE menu_state
                    SET is_finalized = FALSE, finalized_at = NULL, finalized_by = NULL, updated_at = ?
                    WHERE state_key = ? AND is_finalized = TRUE
                    """,
                    [datetime.now(), MENU_STATE_KEY]
                )
                write_audit_log(conn, "menu_reset", principal.id)
                state = self._read_state(conn)
        except StateConflict as e:
            return FinalizeResult(outcome=FinalizeOutcome.CONFLICT, state=self.get_state(), message=e.message)
        except PermissionDeniedError as e:
            return FinalizeResult(outcome=FinalizeOutcome.PERMISSION_DENIED, message=e.message)
        except (ConcurrencyError, DatabaseError) as e:
            logger.warning("Reset aborted: %s", e.message)
            return FinalizeResult(outcome=FinalizeOutcome.ABORTED, message=e.message)

        logger.info("Weekly menu reset by %s", principal.email)
        return FinalizeResult(outcome=FinalizeOutcome.SUCCESS, state=state,
                              message="The menu has been unlocked, voting is open again")

    def finalize_if_due(self, now: Optional[datetime] = None) -> Optional[FinalizeResult]:
        """
        自动定稿触发

        在配置的星期（默认周一）首次调用时处理本周：若仍在投票中则定稿，
        并记录本周已处理；同一周内再次调用（包括重启后或多个进程共享数据库时）不做任何事。

        Returns:
            本次触发的结果；未到时间或本周已处理时返回 None
        """
        tz = ZoneInfo(settings.timezone)
        now = now.astimezone(tz) if now and now.tzinfo else (now or datetime.now(tz))
        if now.weekday() != settings.auto_finalize_weekday:
            return None

        week = iso_week_key(now)
        try:
            with self.db.transaction() as conn:
                state = self._read_state(conn)
                if state.auto_finalized_week == week:
                    return None
                conn.execute(
                    "UPDATE menu_state SET auto_finalized_week = ? WHERE state_key = ?",
                    [week, MENU_STATE_KEY]
                )
                if state.is_finalized:
                    logger.info("Auto finalize for %s skipped, menu already finalized", week)
                    return FinalizeResult(outcome=FinalizeOutcome.CONFLICT, state=self._read_state(conn),
                                          message="The menu is already finalized")
                winners = self._finalize_in_transaction(conn, None)
                state = self._read_state(conn)
        except (ConcurrencyError, DatabaseError) as e:
            logger.warning("Auto finalize aborted: %s", e.message)
            return FinalizeResult(outcome=FinalizeOutcome.ABORTED, message=e.message)

        logger.info("Weekly menu auto-finalized for %s", week)
        return FinalizeResult(outcome=FinalizeOutcome.SUCCESS, state=state, winners=winners,
                              message="The menu for the week has been locked in")
