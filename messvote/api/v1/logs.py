"""
日志管理路由模块
操作审计日志查询
"""

import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from ...core.database import DatabaseManager, get_db
from ...core.error_handler import create_paginated_response
from ...core.security import get_current_principal, require_management
from ...models.base import PaginationParams
from ...models.user import Principal

router = APIRouter()


def _log_entry(row: Dict[str, Any]) -> Dict[str, Any]:
    detail = row.get("detail_json")
    try:
        detail = json.loads(detail) if detail else {}
    except (json.JSONDecodeError, TypeError):
        detail = {"raw": detail}
    return {
        "log_id": row["log_id"],
        "user_id": row["user_id"],
        "actor_id": row["actor_id"],
        "action": row["action"],
        "detail": detail,
        "created_at": str(row["created_at"])
    }


def _query_logs(db: DatabaseManager, where: str, params: list, pagination: PaginationParams):
    total_row = db.execute_one(f"SELECT COUNT(*) AS total FROM logs {where}", params)
    total = total_row["total"] if total_row else 0

    rows = db.execute_query(
        f"""
        SELECT log_id, user_id, actor_id, action, detail_json, created_at
        FROM logs {where}
        ORDER BY created_at DESC, log_id DESC
        LIMIT ? OFFSET ?
        """,
        params + [pagination.size, pagination.offset]
    )
    return create_paginated_response(
        [_log_entry(row) for row in rows], total, pagination.page, pagination.size
    )


@router.get("/my")
def get_my_logs(
    page: int = Query(1, ge=1),
    size: int = Query(10, ge=1, le=100),
    principal: Principal = Depends(get_current_principal),
    db: DatabaseManager = Depends(get_db)
):
    """获取当前用户相关的日志"""
    return _query_logs(
        db,
        "WHERE actor_id = ? OR user_id = ?",
        [principal.id, principal.id],
        PaginationParams(page=page, size=size)
    )


@router.get("/all")
def get_all_logs(
    page: int = Query(1, ge=1),
    size: int = Query(10, ge=1, le=100),
    action: Optional[str] = None,
    principal: Principal = Depends(require_management),
    db: DatabaseManager = Depends(get_db)
):
    """获取系统所有日志（管理员功能）"""
    where, params = ("WHERE action = ?", [action]) if action else ("", [])
    return _query_logs(db, where, params, PaginationParams(page=page, size=size))
