"""TaskStore SQLite 实现

tasks 表是 events 的物化视图（projection）。
所有状态更新必须通过事件触发，此处仅提供数据库操作。
写入使用 version 做乐观并发控制。
"""

import json
from datetime import datetime

import aiosqlite

from ..models.enums import TaskStatus
from ..models.task import Task, TaskStats

_TASK_COLUMNS = (
    "task_id",
    "title",
    "description",
    "customer_id",
    "assigned_to",
    "assigned_by",
    "assigned_date",
    "expected_completion_date",
    "earliest_completion_date",
    "latest_completion_date",
    "completed_date",
    "status",
    "pending_completion",
    "reopen_reason",
    "rejection_reason",
    "custom_fields",
    "version",
    "created_at",
    "updated_at",
)

# 状态 -> TaskStats 字段
_STATS_FIELDS: dict[TaskStatus, str] = {
    TaskStatus.NOT_YET_STARTED: "not_yet_started",
    TaskStatus.PENDING: "pending",
    TaskStatus.IN_PROGRESS: "in_progress",
    TaskStatus.DELAYED: "delayed_tasks",
    TaskStatus.COMPLETED: "completed_tasks",
    TaskStatus.REOPENED: "reopened_tasks",
    TaskStatus.REJECTED: "rejected_tasks",
    TaskStatus.HOLD: "on_hold",
}


class TaskVersionConflictError(Exception):
    """写入时 version 与预期不符（并发修改）"""

    def __init__(self, task_id: str, expected_version: int) -> None:
        self.task_id = task_id
        self.expected_version = expected_version
        super().__init__(
            f"Task {task_id} was modified concurrently (expected version {expected_version})"
        )


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _task_values(task: Task) -> tuple:
    return (
        task.task_id,
        task.title,
        task.description,
        task.customer_id,
        task.assigned_to,
        task.assigned_by,
        task.assigned_date.isoformat(),
        _iso(task.expected_completion_date),
        _iso(task.earliest_completion_date),
        _iso(task.latest_completion_date),
        _iso(task.completed_date),
        task.status.value,
        int(task.pending_completion),
        task.reopen_reason,
        task.rejection_reason,
        json.dumps(task.custom_fields, ensure_ascii=False),
        task.version,
        task.created_at.isoformat(),
        task.updated_at.isoformat(),
    )


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_task(self, task: Task) -> None:
        """创建任务记录（不提交事务）"""
        placeholders = ", ".join("?" for _ in _TASK_COLUMNS)
        await self._conn.execute(
            f"INSERT INTO tasks ({', '.join(_TASK_COLUMNS)}) VALUES ({placeholders})",
            _task_values(task),
        )

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        cursor = await self._conn.execute(
            "SELECT * FROM tasks WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def list_tasks(
        self,
        status: TaskStatus | None = None,
        assigned_to: str | None = None,
        customer_id: str | None = None,
    ) -> list[Task]:
        """查询任务列表，按 created_at 倒序

        Args:
            status: 按状态筛选
            assigned_to: 按执行人筛选
            customer_id: 按客户筛选
        """
        clauses: list[str] = []
        params: list[str] = []
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        if assigned_to is not None:
            clauses.append("assigned_to = ?")
            params.append(assigned_to)
        if customer_id is not None:
            clauses.append("customer_id = ?")
            params.append(customer_id)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        cursor = await self._conn.execute(
            f"SELECT * FROM tasks{where} ORDER BY created_at DESC, task_id DESC",
            params,
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def save_task(self, task: Task, expected_version: int) -> None:
        """整行写回任务投影（不提交事务）

        Raises:
            TaskVersionConflictError: 库中 version 不等于 expected_version
        """
        assignments = ", ".join(f"{col} = ?" for col in _TASK_COLUMNS[1:])
        cursor = await self._conn.execute(
            f"UPDATE tasks SET {assignments} WHERE task_id = ? AND version = ?",
            (*_task_values(task)[1:], task.task_id, expected_version),
        )
        if cursor.rowcount != 1:
            raise TaskVersionConflictError(task.task_id, expected_version)

    async def get_stats(self, assigned_to: str | None = None) -> TaskStats:
        """按状态统计任务数量"""
        if assigned_to is None:
            cursor = await self._conn.execute(
                "SELECT status, COUNT(*) AS n FROM tasks GROUP BY status"
            )
        else:
            cursor = await self._conn.execute(
                "SELECT status, COUNT(*) AS n FROM tasks WHERE assigned_to = ? GROUP BY status",
                (assigned_to,),
            )
        rows = await cursor.fetchall()
        counts: dict[str, int] = {}
        total = 0
        for row in rows:
            field = _STATS_FIELDS.get(TaskStatus(row["status"]))
            if field is not None:
                counts[field] = row["n"]
            total += row["n"]
        return TaskStats(total_tasks=total, **counts)

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> Task:
        """将数据库行转换为 Task 模型"""
        return Task(
            task_id=row["task_id"],
            title=row["title"],
            description=row["description"],
            customer_id=row["customer_id"],
            assigned_to=row["assigned_to"],
            assigned_by=row["assigned_by"],
            assigned_date=datetime.fromisoformat(row["assigned_date"]),
            expected_completion_date=_parse(row["expected_completion_date"]),
            earliest_completion_date=_parse(row["earliest_completion_date"]),
            latest_completion_date=_parse(row["latest_completion_date"]),
            completed_date=_parse(row["completed_date"]),
            status=TaskStatus(row["status"]),
            pending_completion=bool(row["pending_completion"]),
            reopen_reason=row["reopen_reason"],
            rejection_reason=row["rejection_reason"],
            custom_fields=json.loads(row["custom_fields"]) if row["custom_fields"] else {},
            version=row["version"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
