"""任务命令层 -- 任务看板上的操作处理

每个命令：
1. 按缓存的 TaskSettings 检查生命周期守卫，未提供的动作不发请求
2. 客户端校验原因 / OTP 非空
3. 调用 TaskApi，成功后刷新任务列表
4. 通过 notifier 回调发出 Notice；失败时 Notice 携带提取的错误信息
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum

import httpx
import structlog
from hrflow.core.lifecycle import allowed_actions, can_perform, display_status
from hrflow.core.models import (
    DisplayViewer,
    Task,
    TaskAction,
    TaskSettings,
    TaskStatus,
    UserRole,
)

from .exceptions import ClientError, InvalidInputError
from .tasks import TaskApi, TransitionOutcome

log = structlog.get_logger()


class NoticeLevel(StrEnum):
    SUCCESS = "success"
    INFO = "info"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    """界面提示"""

    title: str
    description: str = ""
    level: NoticeLevel = NoticeLevel.SUCCESS


Notifier = Callable[[Notice], None]


class TaskBoard:
    """任务列表 + 设置缓存"""

    def __init__(
        self,
        api: TaskApi,
        *,
        status: TaskStatus | None = None,
        assigned_to: str | None = None,
    ) -> None:
        self._api = api
        self._status = status
        self._assigned_to = assigned_to
        self.tasks: list[Task] = []
        self.settings = TaskSettings()

    async def refresh(self) -> list[Task]:
        """重新拉取任务列表"""
        self.tasks = await self._api.list_tasks(status=self._status, assigned_to=self._assigned_to)
        return self.tasks

    async def load_settings(self) -> TaskSettings:
        self.settings = await self._api.get_settings()
        return self.settings

    def find(self, task_id: str) -> Task | None:
        return next((t for t in self.tasks if t.task_id == task_id), None)

    def actions_for(self, task: Task, role: UserRole) -> frozenset[TaskAction]:
        return allowed_actions(task, self.settings, role)

    def badge(self, task: Task, viewer: DisplayViewer) -> str:
        return display_status(task, viewer)


class TaskCommands:
    """任务操作处理器

    Args:
        api: TaskApi 或 CustomerTaskApi
        board: 任务看板（设置缓存 + 列表刷新）
        role: 当前用户角色
        notify: Notice 回调
    """

    def __init__(
        self,
        api: TaskApi,
        board: TaskBoard,
        role: UserRole,
        notify: Notifier,
    ) -> None:
        self._api = api
        self._board = board
        self._role = role
        self._notify = notify
        # 已发送 OTP、等待输入验证码的任务
        self.awaiting_otp: set[str] = set()

    def offered(self, task: Task, action: TaskAction) -> bool:
        return can_perform(task, action, self._board.settings, self._role)

    async def _run(
        self,
        task: Task,
        action: TaskAction,
        call: Callable[[], Awaitable[object]],
        success_title: str,
        failure_text: str,
    ) -> bool:
        if not self.offered(task, action):
            log.info(
                "task_action_not_offered",
                task_id=task.task_id,
                action=action.value,
                status=task.status.value,
            )
            return False

        try:
            result = await call()
        except ClientError as e:
            log.info("task_action_failed", task_id=task.task_id, action=action.value)
            self._notify(Notice("Error", e.message or failure_text, NoticeLevel.ERROR))
            return False
        except httpx.HTTPError as e:
            log.warning(
                "task_action_transport_error",
                task_id=task.task_id,
                action=action.value,
                error_type=type(e).__name__,
            )
            self._notify(Notice("Error", failure_text, NoticeLevel.ERROR))
            return False

        description = getattr(result, "message", "")
        self._notify(Notice(success_title, description))
        await self._refresh_board()
        return True

    async def _refresh_board(self) -> None:
        try:
            await self._board.refresh()
        except (ClientError, httpx.HTTPError) as e:
            log.warning("task_board_refresh_failed", error_type=type(e).__name__)
            self._notify(Notice("Error", "Failed to refresh tasks", NoticeLevel.ERROR))

    @staticmethod
    def _require(value: str | None, message: str) -> str:
        cleaned = (value or "").strip()
        if not cleaned:
            raise InvalidInputError(message)
        return cleaned

    # ---- 执行人动作 ----

    async def start(self, task: Task) -> bool:
        return await self._run(
            task,
            TaskAction.START,
            lambda: self._api.update_status(task.task_id, TaskAction.START, version=task.version),
            "Task started",
            "Failed to start task",
        )

    async def hold(self, task: Task) -> bool:
        return await self._run(
            task,
            TaskAction.HOLD,
            lambda: self._api.update_status(task.task_id, TaskAction.HOLD, version=task.version),
            "Task on hold",
            "Failed to put task on hold",
        )

    async def resume(self, task: Task) -> bool:
        return await self._run(
            task,
            TaskAction.RESUME,
            lambda: self._api.update_status(task.task_id, TaskAction.RESUME, version=task.version),
            "Task resumed",
            "Failed to resume task",
        )

    async def complete(self, task: Task) -> bool:
        """完成任务；启用 OTP 时改为生成并发送 OTP"""
        if self._board.settings.enable_otp_verification:
            ok = await self._run(
                task,
                TaskAction.COMPLETE,
                lambda: self._api.generate_otp(task.task_id),
                "OTP sent",
                "Failed to generate OTP",
            )
            if ok:
                self.awaiting_otp.add(task.task_id)
            return ok
        return await self._run(
            task,
            TaskAction.COMPLETE,
            lambda: self._api.update_status(task.task_id, TaskAction.COMPLETE, version=task.version),
            "Task completed",
            "Failed to complete task",
        )

    async def submit_otp(self, task: Task, otp: str | None) -> bool:
        """提交 OTP；错误验证码保留等待状态，可直接重试"""

        async def call() -> TransitionOutcome:
            code = self._require(otp, "Please enter the OTP")
            return await self._api.verify_otp(task.task_id, code)

        ok = await self._run(task, TaskAction.COMPLETE, call, "OTP verified", "Failed to verify OTP")
        if ok:
            self.awaiting_otp.discard(task.task_id)
        return ok

    # ---- 管理员 / 审批动作 ----

    async def approve(self, task: Task) -> bool:
        return await self._run(
            task,
            TaskAction.APPROVE,
            lambda: self._api.approve(task.task_id),
            "Task approved",
            "Failed to approve task",
        )

    async def reject(self, task: Task, reason: str | None) -> bool:
        async def call() -> TransitionOutcome:
            return await self._api.reject(
                task.task_id, self._require(reason, "Please provide a rejection reason")
            )

        return await self._run(task, TaskAction.REJECT, call, "Task rejected", "Failed to reject task")

    async def approve_completion(self, task: Task) -> bool:
        return await self._run(
            task,
            TaskAction.APPROVE_COMPLETION,
            lambda: self._api.approve_completion(task.task_id),
            "Completion approved",
            "Failed to approve task completion",
        )

    async def reject_completion(self, task: Task, reason: str | None = None) -> bool:
        return await self._run(
            task,
            TaskAction.REJECT_COMPLETION,
            lambda: self._api.reject_completion(task.task_id, reason),
            "Completion rejected",
            "Failed to reject task completion",
        )

    async def reopen(self, task: Task, reason: str | None) -> bool:
        async def call() -> TransitionOutcome:
            return await self._api.reopen(
                task.task_id, self._require(reason, "Please provide a reason for reopening")
            )

        return await self._run(task, TaskAction.REOPEN, call, "Task reopened", "Failed to reopen task")
