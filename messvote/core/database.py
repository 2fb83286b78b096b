"""
数据库连接和管理模块
基于 DuckDB 提供用户、菜品、投票和菜单状态的存储，以及串行化的事务接口

数据库表说明：
- users: 用户基本信息、角色和登录失败计数
- revoked_tokens: 已登出的令牌 jti
- menu_items: 菜品及其票数
- user_votes: 投票记录，(user_id, item_id) 唯一
- menu_state: 每周菜单状态单例（state_key = 'weekly'）
- logs: 操作审计日志
"""

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional

import duckdb

from .exceptions import BaseApplicationError, ConcurrencyError, DatabaseError
from ..config.settings import settings

logger = logging.getLogger(__name__)

MENU_STATE_KEY = "weekly"

# 完整的表结构定义
SCHEMA_SQL = r"""
CREATE TABLE IF NOT EXISTS users (
  id TEXT PRIMARY KEY,
  email TEXT UNIQUE NOT NULL,
  display_name TEXT,
  role TEXT CHECK(role IN ('student','management')) NOT NULL,
  password_hash TEXT NOT NULL,
  failed_logins INTEGER DEFAULT 0,
  last_failed_at TIMESTAMP,
  created_at TIMESTAMP DEFAULT now(),
  updated_at TIMESTAMP DEFAULT now()
);

CREATE TABLE IF NOT EXISTS revoked_tokens (
  jti TEXT PRIMARY KEY,
  user_id TEXT,
  revoked_at TIMESTAMP DEFAULT now()
);

CREATE SEQUENCE IF NOT EXISTS menu_items_id_seq;
CREATE TABLE IF NOT EXISTS menu_items (
  item_id INTEGER DEFAULT nextval('menu_items_id_seq') PRIMARY KEY,
  title TEXT NOT NULL,
  category TEXT CHECK(category IN ('breakfast','lunch','snack','dinner')) NOT NULL,
  day TEXT CHECK(day IN ('monday','tuesday','wednesday','thursday','friday','saturday','sunday')) NOT NULL,
  dietary_info TEXT NOT NULL,
  ingredients_json TEXT,
  image_url TEXT,
  image_hint TEXT,
  votes INTEGER NOT NULL DEFAULT 0 CHECK(votes >= 0),
  created_by TEXT,
  created_at TIMESTAMP DEFAULT now(),
  updated_at TIMESTAMP DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_menu_items_slot ON menu_items(day, category);

CREATE TABLE IF NOT EXISTS user_votes (
  user_id TEXT NOT NULL,
  item_id INTEGER NOT NULL,
  voted_at TIMESTAMP DEFAULT now(),
  PRIMARY KEY (user_id, item_id)
);

CREATE TABLE IF NOT EXISTS menu_state (
  state_key TEXT PRIMARY KEY,
  is_finalized BOOLEAN NOT NULL DEFAULT FALSE,
  finalized_at TIMESTAMP,
  finalized_by TEXT,
  auto_finalized_week TEXT,
  updated_at TIMESTAMP DEFAULT now()
);

CREATE SEQUENCE IF NOT EXISTS logs_id_seq;
CREATE TABLE IF NOT EXISTS logs (
  log_id INTEGER DEFAULT nextval('logs_id_seq') PRIMARY KEY,
  user_id TEXT,
  actor_id TEXT,
  action TEXT,
  detail_json TEXT,
  created_at TIMESTAMP DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_logs_actor ON logs(actor_id);
CREATE INDEX IF NOT EXISTS idx_logs_action ON logs(action);
"""


def rows_to_dicts(cursor) -> List[Dict[str, Any]]:
    """把 DuckDB 游标结果转换为字典列表"""
    columns = [col[0] for col in cursor.description]
    return [dict(zip(columns, row)) for row in cursor.fetchall()]


def row_to_dict(cursor) -> Optional[Dict[str, Any]]:
    """读取单行结果并转换为字典"""
    row = cursor.fetchone()
    if row is None:
        return None
    columns = [col[0] for col in cursor.description]
    return dict(zip(columns, row))


class DatabaseManager:
    """数据库管理器，封装所有数据库操作

    所有读写都在同一把可重入锁下执行，事务之间天然串行，
    因此"检查是否已投票 + 计数加一 + 写入投票记录"在一个事务内不可分割。
    """

    def __init__(self, db_path: Optional[str] = None):
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.RLock()
        self.db_path = db_path or self._get_db_path_from_settings()

    def _get_db_path_from_settings(self) -> str:
        """从设置中获取数据库路径"""
        db_url = settings.database_url
        if db_url.startswith("duckdb://"):
            db_url = db_url.replace("duckdb://", "", 1)
        if db_url.startswith("/:memory:"):
            db_url = ":memory:"
        return db_url

    @property
    def connection(self) -> duckdb.DuckDBPyConnection:
        """获取数据库连接"""
        with self._lock:
            if self._connection is None:
                if self.db_path != ":memory:":
                    Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
                self._connection = duckdb.connect(self.db_path)
                self._init_schema()
            return self._connection

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        """获取数据库连接 - 保持向后兼容"""
        return self.connection

    def _init_schema(self):
        """初始化数据库表结构和菜单状态单例"""
        try:
            self._connection.execute(SCHEMA_SQL)
            self._connection.execute(
                "INSERT INTO menu_state (state_key, is_finalized) VALUES (?, FALSE) ON CONFLICT DO NOTHING",
                [MENU_STATE_KEY]
            )
        except duckdb.Error as e:
            raise DatabaseError(f"Failed to initialize schema: {e}")

    def init_database(self):
        """初始化数据库"""
        self.get_connection()
        logger.info("Database ready at %s", self.db_path)

    @contextmanager
    def transaction(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """
        数据库事务上下文管理器

        业务异常回滚后原样抛出；DuckDB 的事务冲突转换为 ConcurrencyError，
        其余驱动错误转换为 DatabaseError。
        """
        with self._lock:
            conn = self.connection
            conn.execute("BEGIN TRANSACTION")
            try:
                yield conn
                conn.execute("COMMIT")
            except BaseApplicationError:
                self._rollback(conn)
                raise
            except duckdb.TransactionException as e:
                self._rollback(conn)
                logger.warning("Transaction aborted: %s", e)
                raise ConcurrencyError("The operation could not be completed, please try again")
            except duckdb.Error as e:
                self._rollback(conn)
                if "conflict" in str(e).lower():
                    logger.warning("Transaction conflict: %s", e)
                    raise ConcurrencyError("The operation could not be completed, please try again")
                raise DatabaseError(f"Database operation failed: {e}")
            except Exception:
                self._rollback(conn)
                raise

    def _rollback(self, conn: duckdb.DuckDBPyConnection):
        try:
            conn.execute("ROLLBACK")
        except duckdb.Error as e:
            # 事务可能已被 DuckDB 自动中止
            logger.debug("Rollback skipped: %s", e)

    def execute_query(self, query: str, params: Optional[list] = None) -> List[Dict[str, Any]]:
        """执行查询并返回字典列表"""
        with self._lock:
            try:
                cursor = self.connection.execute(query, params or [])
                return rows_to_dicts(cursor)
            except duckdb.Error as e:
                raise DatabaseError(f"Query execution failed: {e}")

    def execute_one(self, query: str, params: Optional[list] = None) -> Optional[Dict[str, Any]]:
        """执行查询并返回单条结果"""
        with self._lock:
            try:
                cursor = self.connection.execute(query, params or [])
                return row_to_dict(cursor)
            except duckdb.Error as e:
                raise DatabaseError(f"Query execution failed: {e}")

    def close(self):
        """关闭连接"""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None


# 全局数据库管理器实例
db_manager = DatabaseManager()


def get_db() -> DatabaseManager:
    """FastAPI 依赖：返回当前使用的数据库管理器，测试中可通过 dependency_overrides 替换"""
    return db_manager
