"""Projection 重建模块

从 events 表重建 tasks 表（物化视图），确保事件溯源的一致性。
支持单事件应用和全量重建两种模式。
"""

import time
from datetime import datetime

import aiosqlite
import structlog

from .models.enums import EventType, TaskAction
from .models.event import Event
from .models.payloads import StateTransitionPayload, TaskAssignedPayload
from .models.task import Task
from .store.event_store import SqliteEventStore
from .store.protocols import TaskStore

log = structlog.get_logger()


def apply_event(tasks: dict[str, Task], event: Event) -> None:
    """将单个事件应用到 Task 状态（内存中操作）

    Args:
        tasks: task_id -> Task 的映射表（会被就地修改）
        event: 要应用的事件
    """
    task_id = event.task_id

    if event.type == EventType.TASK_ASSIGNED:
        payload = TaskAssignedPayload.model_validate(event.payload)
        tasks[task_id] = Task.model_validate(payload.task)
    elif event.type == EventType.STATE_TRANSITION:
        task = tasks.get(task_id)
        if task is None:
            log.warning("projection_orphan_event", task_id=task_id, event_id=event.event_id)
            return
        payload = StateTransitionPayload.model_validate(event.payload)
        updates: dict = {
            "status": payload.to_status,
            "pending_completion": payload.pending_completion,
            "version": payload.version,
            "updated_at": event.ts,
            "completed_date": (
                datetime.fromisoformat(payload.completed_date) if payload.completed_date else None
            ),
        }
        if payload.action is TaskAction.REOPEN:
            updates["reopen_reason"] = payload.reason
        elif payload.action in (TaskAction.REJECT, TaskAction.REJECT_COMPLETION) and payload.reason:
            updates["rejection_reason"] = payload.reason
        tasks[task_id] = task.model_copy(update=updates)
    # OTP / 表单事件不改变任务投影


async def rebuild_all(
    conn: aiosqlite.Connection,
    event_store: SqliteEventStore,
    task_store: TaskStore,
) -> int:
    """从 events 表重建 tasks 表

    流程：
    1. 读取所有事件（按 task_id, task_seq 排序）
    2. 在内存中应用所有事件，构建 Task 状态
    3. 清空 tasks 表
    4. 写入重建后的所有 Task

    Args:
        conn: 数据库连接
        event_store: EventStore 实例
        task_store: TaskStore 实例

    Returns:
        处理的事件总数
    """
    start_time = time.monotonic()

    events = await event_store.get_all_events()
    event_count = len(events)

    await log.ainfo(
        "projection_rebuild_started",
        event_count=event_count,
    )

    tasks: dict[str, Task] = {}
    for event in events:
        apply_event(tasks, event)

    # 临时禁用外键约束，清空 tasks 表后重建
    await conn.execute("PRAGMA foreign_keys = OFF")
    try:
        await conn.execute("DELETE FROM tasks")
        for task in tasks.values():
            await task_store.create_task(task)
        await conn.commit()
    except Exception:
        await conn.rollback()
        raise
    finally:
        await conn.execute("PRAGMA foreign_keys = ON")

    elapsed_ms = int((time.monotonic() - start_time) * 1000)
    await log.ainfo(
        "projection_rebuild_completed",
        event_count=event_count,
        task_count=len(tasks),
        elapsed_ms=elapsed_ms,
    )

    return event_count
