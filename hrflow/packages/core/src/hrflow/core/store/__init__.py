"""hrflow Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
"""

import asyncio
from pathlib import Path

import aiosqlite

from .event_store import SqliteEventStore
from .form_store import SqliteFormStore
from .otp_store import SqliteOtpStore
from .settings_store import SqliteSettingsStore
from .sqlite_init import init_db
from .task_store import SqliteTaskStore, TaskVersionConflictError
from .transaction import (
    append_event_and_create_task,
    append_event_and_update_task,
    append_event_only,
)
from .user_store import (
    RefreshTokenRecord,
    SqliteUserStore,
    StoredUser,
    UserExistsError,
)


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接

    同一连接上的事务不能交错，所有写事务需持有 write_lock。
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.write_lock = asyncio.Lock()
        self.task_store = SqliteTaskStore(conn)
        self.event_store = SqliteEventStore(conn)
        self.otp_store = SqliteOtpStore(conn)
        self.user_store = SqliteUserStore(conn)
        self.settings_store = SqliteSettingsStore(conn)
        self.form_store = SqliteFormStore(conn)


async def open_connection(db_path: str) -> aiosqlite.Connection:
    """打开并初始化数据库连接（行以 aiosqlite.Row 返回）"""
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    await init_db(conn)
    return conn


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径（":memory:" 为内存库）

    Returns:
        StoreGroup 实例
    """
    conn = await open_connection(db_path)
    return StoreGroup(conn=conn)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "open_connection",
    "SqliteTaskStore",
    "SqliteEventStore",
    "SqliteOtpStore",
    "SqliteUserStore",
    "SqliteSettingsStore",
    "SqliteFormStore",
    "StoredUser",
    "RefreshTokenRecord",
    "UserExistsError",
    "TaskVersionConflictError",
    "init_db",
    "append_event_and_create_task",
    "append_event_and_update_task",
    "append_event_only",
]
