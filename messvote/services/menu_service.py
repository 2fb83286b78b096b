"""
菜单服务
处理菜品的提议、编辑、删除和按角色区分的每周菜单视图
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from ..config.settings import settings
from ..core.audit import write_audit_log
from ..core.database import DatabaseManager, db_manager, rows_to_dicts
from ..core.exceptions import ItemNotFoundError, PermissionDeniedError, ValidationError
from ..models.menu import (
    CATEGORY_ORDER,
    DAY_ORDER,
    MenuItem,
    MenuItemCreate,
    MenuItemUpdate,
    RankedMenuItem,
)
from ..models.user import Principal

logger = logging.getLogger(__name__)

MENU_ITEM_COLUMNS = """
    item_id, title, category, day, dietary_info, ingredients_json,
    image_url, image_hint, votes, created_by, created_at, updated_at
"""

# 票数降序，同票时按 item_id 升序（即提议顺序）
TALLY_ORDER = "votes DESC, item_id ASC"


def menu_item_from_row(row: Dict[str, Any]) -> MenuItem:
    """把数据库行转换为菜品模型"""
    data = dict(row)
    ingredients = []
    if data.get("ingredients_json"):
        try:
            ingredients = json.loads(data["ingredients_json"])
        except (json.JSONDecodeError, TypeError):
            ingredients = []
    data.pop("ingredients_json", None)
    data["ingredients"] = ingredients
    return MenuItem(**data)


def rank_items(items: List[MenuItem]) -> List[RankedMenuItem]:
    """按票数排名（列表需已按 TALLY_ORDER 排好序）"""
    return [
        RankedMenuItem(**item.model_dump(), rank=index)
        for index, item in enumerate(items, start=1)
    ]


def group_by_slot(items: List[RankedMenuItem]) -> Dict[str, Dict[str, List[RankedMenuItem]]]:
    """按 星期 -> 餐别 分组，保持固定的展示顺序"""
    grouped: Dict[str, Dict[str, List[RankedMenuItem]]] = {}
    for day in DAY_ORDER:
        for category in CATEGORY_ORDER:
            slot_items = [i for i in items if i.day == day and i.category == category]
            if slot_items:
                grouped.setdefault(day, {})[category] = slot_items
    return grouped


class MenuService:
    """菜单服务"""

    def __init__(self, db: DatabaseManager = None):
        self.db = db or db_manager

    def _require_management(self, principal: Principal):
        if not principal.is_management:
            raise PermissionDeniedError("Management access required")

    def propose_item(self, principal: Principal, data: MenuItemCreate) -> MenuItem:
        """提议新菜品（管理员）"""
        self._require_management(principal)

        image_url = data.image_url or settings.image_url_template.format(seed=quote(data.title, safe=""))
        image_hint = data.image_hint or settings.default_image_hint
        now = datetime.now()

        with self.db.transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO menu_items (
                    title, category, day, dietary_info, ingredients_json,
                    image_url, image_hint, votes, created_by, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?, ?, ?)
                RETURNING item_id
                """,
                [
                    data.title,
                    data.category.value,
                    data.day.value,
                    data.dietary_info.value,
                    json.dumps(data.ingredients, ensure_ascii=False),
                    image_url,
                    image_hint,
                    principal.id,
                    now,
                    now,
                ]
            )
            item_id = cursor.fetchone()[0]
            write_audit_log(conn, "menu_item_create", principal.id,
                            details={"item_id": item_id, "title": data.title})

        logger.info("Menu item %s proposed by %s", item_id, principal.email)
        return self.get_item(item_id)

    def update_item(self, principal: Principal, item_id: int, data: MenuItemUpdate) -> MenuItem:
        """编辑菜品（管理员），票数不在可编辑范围内"""
        self._require_management(principal)

        changes = data.model_dump(exclude_unset=True)
        fields = []
        params = []
        for name, value in changes.items():
            if value is None:
                continue
            if name == "ingredients":
                fields.append("ingredients_json = ?")
                params.append(json.dumps(value, ensure_ascii=False))
            elif name == "title":
                title = value.strip()
                if not title:
                    raise ValidationError("title must not be blank")
                fields.append("title = ?")
                params.append(title)
            else:
                fields.append(f"{name} = ?")
                params.append(getattr(value, "value", value))

        with self.db.transaction() as conn:
            exists = conn.execute("SELECT item_id FROM menu_items WHERE item_id = ?", [item_id]).fetchone()
            if not exists:
                raise ItemNotFoundError(item_id)
            if fields:
                fields.append("updated_at = ?")
                params.extend([datetime.now(), item_id])
                conn.execute(f"UPDATE menu_items SET {', '.join(fields)} WHERE item_id = ?", params)
                write_audit_log(conn, "menu_item_update", principal.id,
                                details={"item_id": item_id, "fields": sorted(changes)})

        return self.get_item(item_id)

    def delete_item(self, principal: Principal, item_id: int) -> int:
        """删除菜品（管理员），同一事务内级联删除该菜品的投票记录

        Returns:
            被删除的投票记录数
        """
        self._require_management(principal)

        with self.db.transaction() as conn:
            row = conn.execute("SELECT title FROM menu_items WHERE item_id = ?", [item_id]).fetchone()
            if not row:
                raise ItemNotFoundError(item_id)
            removed_votes = conn.execute(
                "SELECT COUNT(*) FROM user_votes WHERE item_id = ?", [item_id]
            ).fetchone()[0]
            conn.execute("DELETE FROM user_votes WHERE item_id = ?", [item_id])
            conn.execute("DELETE FROM menu_items WHERE item_id = ?", [item_id])
            write_audit_log(conn, "menu_item_delete", principal.id,
                            details={"item_id": item_id, "title": row[0], "removed_votes": removed_votes})

        logger.info("Menu item %s deleted by %s (%d votes removed)", item_id, principal.email, removed_votes)
        return removed_votes

    def get_item(self, item_id: int) -> MenuItem:
        """获取单个菜品"""
        row = self.db.execute_one(
            f"SELECT {MENU_ITEM_COLUMNS} FROM menu_items WHERE item_id = ?",
            [item_id]
        )
        if not row:
            raise ItemNotFoundError(item_id)
        return menu_item_from_row(row)

    def list_items(self, day: Optional[str] = None, category: Optional[str] = None) -> List[MenuItem]:
        """按条件列出菜品，按提议顺序"""
        conditions = []
        params = []
        if day:
            conditions.append("day = ?")
            params.append(getattr(day, "value", day))
        if category:
            conditions.append("category = ?")
            params.append(getattr(category, "value", category))
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        rows = self.db.execute_query(
            f"SELECT {MENU_ITEM_COLUMNS} FROM menu_items {where} ORDER BY item_id",
            params
        )
        return [menu_item_from_row(row) for row in rows]

    def weekly_menu(self, principal: Principal) -> Dict[str, Any]:
        """每周菜单视图

        - 管理员：全部菜品，按餐段内票数排名
        - 学生（投票中）：全部菜品，标记自己是否已投
        - 学生（已定稿）：每个餐段只显示胜出菜品
        """
        # 延迟导入，避免服务之间循环依赖
        from .finalization_service import FinalizationService

        finalization = FinalizationService(self.db)

        # 状态和菜品在同一事务内读取，视图来自同一快照
        with self.db.transaction() as conn:
            state = finalization._read_state(conn)

            if principal.is_management:
                rows = rows_to_dicts(conn.execute(
                    f"SELECT {MENU_ITEM_COLUMNS} FROM menu_items ORDER BY {TALLY_ORDER}"
                ))
                items = [menu_item_from_row(row) for row in rows]
                ranked = []
                for day in DAY_ORDER:
                    for category in CATEGORY_ORDER:
                        ranked.extend(rank_items([i for i in items if i.day == day and i.category == category]))
                return {"state": state, "view": "management", "days": group_by_slot(ranked)}

            if state.is_finalized:
                winners = [
                    RankedMenuItem(**winner.item.model_dump(), rank=1, finalized=True)
                    for winner in finalization._compute_winners(conn)
                ]
                return {"state": state, "view": "finalized", "days": group_by_slot(winners)}

            voted = {
                row[0]
                for row in conn.execute(
                    "SELECT item_id FROM user_votes WHERE user_id = ?", [principal.id]
                ).fetchall()
            }
            rows = rows_to_dicts(conn.execute(
                f"SELECT {MENU_ITEM_COLUMNS} FROM menu_items ORDER BY item_id"
            ))

        items = [
            RankedMenuItem(**menu_item_from_row(row).model_dump(), my_vote=row["item_id"] in voted)
            for row in rows
        ]
        return {"state": state, "view": "voting", "days": group_by_slot(items)}
