"""
操作审计日志
所有改变状态的业务操作都在同一事务内追加一条 logs 记录
"""

import json
from datetime import datetime
from typing import Any, Dict, Optional


def write_audit_log(
    conn,
    action: str,
    actor_id: Optional[str],
    user_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None
):
    """记录操作日志"""
    conn.execute(
        """
        INSERT INTO logs (user_id, actor_id, action, detail_json, created_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        [
            user_id,
            actor_id,
            action,
            json.dumps(details or {}, ensure_ascii=False, default=str),
            datetime.now()
        ]
    )
