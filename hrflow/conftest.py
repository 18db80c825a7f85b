"""全局 pytest 配置 -- 临时 SQLite 数据库 fixture"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite
import pytest
import pytest_asyncio
from hrflow.core.models import Task, TaskStatus


@pytest_asyncio.fixture
async def tmp_db_path(tmp_path: Path) -> Path:
    """提供临时 SQLite 数据库路径"""
    return tmp_path / "test.db"


@pytest_asyncio.fixture
async def db_conn(tmp_db_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    """提供已初始化的临时 SQLite 数据库连接"""
    from hrflow.core.store import open_connection

    conn = await open_connection(str(tmp_db_path))
    yield conn
    await conn.close()


def make_task(**overrides) -> Task:
    """构造测试任务（默认 NOT_YET_STARTED，version=1）"""
    now = datetime.now(UTC)
    values = {
        "task_id": "01JTASK0000000000000000001",
        "title": "Install router",
        "customer_id": "cust-1",
        "assigned_to": "emp-1",
        "assigned_by": "admin-1",
        "assigned_date": now,
        "status": TaskStatus.NOT_YET_STARTED,
        "created_at": now,
        "updated_at": now,
    }
    values.update(overrides)
    return Task(**values)


@pytest.fixture
def task_factory():
    """返回任务构造函数，关键字参数覆盖默认值"""
    return make_task
