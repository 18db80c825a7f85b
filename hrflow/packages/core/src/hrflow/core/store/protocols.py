"""Store Protocol 接口定义

定义 TaskStore、EventStore、OtpStore 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
"""

from typing import Protocol

from ..models.enums import TaskStatus
from ..models.event import Event
from ..models.task import Task, TaskStats
from ..otp import OtpChallenge


class TaskStore(Protocol):
    """Task 存储接口"""

    async def create_task(self, task: Task) -> None:
        """创建任务记录"""
        ...

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        ...

    async def list_tasks(
        self,
        status: TaskStatus | None = None,
        assigned_to: str | None = None,
        customer_id: str | None = None,
    ) -> list[Task]:
        """查询任务列表"""
        ...

    async def save_task(self, task: Task, expected_version: int) -> None:
        """按版本写回任务（仅通过事件触发）"""
        ...

    async def get_stats(self, assigned_to: str | None = None) -> TaskStats:
        """状态计数"""
        ...


class EventStore(Protocol):
    """Event 存储接口

    事件表 append-only：只允许插入，不允许更新或删除。
    """

    async def append_event(self, event: Event) -> None:
        """追加事件（append-only）"""
        ...

    async def get_events_for_task(self, task_id: str) -> list[Event]:
        """查询指定任务的所有事件"""
        ...

    async def get_next_task_seq(self, task_id: str) -> int:
        """获取指定任务的下一个 task_seq（MAX+1）"""
        ...


class OtpStore(Protocol):
    """OTP challenge 存储接口"""

    async def put_challenge(self, challenge: OtpChallenge) -> None: ...

    async def get_challenge(self, task_id: str) -> OtpChallenge | None: ...

    async def delete_challenge(self, task_id: str) -> None: ...
