"""事件+Projection 原子事务封装

在同一 SQLite 事务内原子提交事件和 Task projection 更新。
调用方在本函数之前于同一连接上执行的未提交写入（如 OTP challenge）
会随本次提交一并生效，失败时一并回滚。
"""

import aiosqlite

from ..models.event import Event
from ..models.task import Task
from .event_store import SqliteEventStore
from .task_store import SqliteTaskStore


async def append_event_and_create_task(
    conn: aiosqlite.Connection,
    event_store: SqliteEventStore,
    task_store: SqliteTaskStore,
    event: Event,
    task: Task,
) -> None:
    """在同一事务内写入新任务投影与 TASK_ASSIGNED 事件"""
    try:
        await task_store.create_task(task)
        await event_store.append_event(event)
        await conn.commit()
    except Exception:
        await conn.rollback()
        raise


async def append_event_and_update_task(
    conn: aiosqlite.Connection,
    event_store: SqliteEventStore,
    task_store: SqliteTaskStore,
    event: Event,
    task: Task,
    expected_version: int,
) -> None:
    """在同一事务内原子提交事件写入和 Task projection 更新

    Args:
        conn: 数据库连接（需在同一连接上操作以保证事务性）
        event_store: EventStore 实例
        task_store: TaskStore 实例
        event: 要写入的事件
        task: 流转后的任务
        expected_version: 流转前的任务版本

    Raises:
        TaskVersionConflictError: 并发修改，事务已回滚
    """
    try:
        await event_store.append_event(event)
        await task_store.save_task(task, expected_version)
        await conn.commit()
    except Exception:
        await conn.rollback()
        raise


async def append_event_only(
    conn: aiosqlite.Connection,
    event_store: SqliteEventStore,
    event: Event,
) -> None:
    """仅写入事件（不改变 Task 投影）"""
    try:
        await event_store.append_event(event)
        await conn.commit()
    except Exception:
        await conn.rollback()
        raise
