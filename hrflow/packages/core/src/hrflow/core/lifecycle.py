"""任务生命周期状态机

纯函数实现，输入 (task, settings, role)，不做任何 I/O。
客户端用它决定提供哪些动作，网关用它做权威校验。

流转表：
- NOT_YET_STARTED --start--> IN_PROGRESS
- PENDING/REOPENED --approve--> NOT_YET_STARTED（需人工审批且非完成审批）
- PENDING/REOPENED --reject--> REJECTED（同上）
- REOPENED --start--> IN_PROGRESS（auto_approve）
- IN_PROGRESS --hold--> HOLD
- IN_PROGRESS --complete--> COMPLETED 或 PENDING+pending_completion
- HOLD/DELAYED --resume--> IN_PROGRESS
- pending_completion --approve_completion--> COMPLETED（管理员）
- pending_completion --reject_completion--> IN_PROGRESS（管理员）
- 任意非终态 --reopen--> REOPENED（管理员）
- NOT_YET_STARTED/IN_PROGRESS 且逾期 --mark_delayed--> DELAYED
"""

from dataclasses import dataclass
from datetime import UTC, datetime

from .config import REASON_MAX_LENGTH
from .models.enums import (
    ADMIN_ACTIONS,
    TERMINAL_STATES,
    DisplayViewer,
    TaskAction,
    TaskStatus,
    UserRole,
)
from .models.settings import TaskSettings
from .models.task import Task


class LifecycleError(Exception):
    """生命周期错误基类"""


class TransitionRefusedError(LifecycleError):
    """当前状态/设置/角色下不允许执行该动作"""

    def __init__(self, task: Task, action: TaskAction, detail: str = "") -> None:
        self.task_id = task.task_id
        self.status = task.status
        self.action = action
        message = f"Action '{action.value}' is not allowed from status '{task.status.value}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class OtpRequiredError(LifecycleError):
    """启用 OTP 时完成任务必须先通过 OTP 校验"""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__("OTP verification is required to complete this task")


@dataclass(frozen=True)
class TransitionResult:
    """一次状态流转的结果"""

    task: Task
    action: TaskAction
    from_status: TaskStatus
    to_status: TaskStatus
    message: str


# 状态 -> 徽章标签
_BADGE_LABELS: dict[TaskStatus, str] = {
    TaskStatus.NOT_YET_STARTED: "Not Started",
    TaskStatus.IN_PROGRESS: "In Progress",
    TaskStatus.DELAYED: "Delayed",
    TaskStatus.COMPLETED: "Completed",
    TaskStatus.REOPENED: "Reopened",
    TaskStatus.PENDING: "Pending Approval",
    TaskStatus.REJECTED: "Rejected",
    TaskStatus.HOLD: "On Hold",
}


def _is_overdue(task: Task, now: datetime) -> bool:
    due = task.expected_completion_date
    if due is None:
        return False
    if due.tzinfo is None:
        due = due.replace(tzinfo=UTC)
    return due < now


def allowed_actions(
    task: Task,
    settings: TaskSettings,
    role: UserRole,
    *,
    now: datetime | None = None,
) -> frozenset[TaskAction]:
    """计算当前可执行的动作集合

    Args:
        task: 当前任务
        settings: 任务设置
        role: 操作者角色
        now: 判断逾期的参考时间，默认当前 UTC 时间

    Returns:
        可执行动作的集合（终态返回空集）
    """
    status = task.status
    if status in TERMINAL_STATES:
        return frozenset()

    now = now or datetime.now(UTC)
    actions: set[TaskAction] = set()

    if status is TaskStatus.NOT_YET_STARTED:
        actions.add(TaskAction.START)
    elif task.awaiting_initial_approval:
        if settings.auto_approve:
            if status is TaskStatus.REOPENED:
                actions.add(TaskAction.START)
        else:
            actions.update((TaskAction.APPROVE, TaskAction.REJECT))
    elif status is TaskStatus.IN_PROGRESS:
        actions.update((TaskAction.HOLD, TaskAction.COMPLETE))
    elif status in (TaskStatus.HOLD, TaskStatus.DELAYED):
        actions.add(TaskAction.RESUME)

    if task.pending_completion:
        actions.update((TaskAction.APPROVE_COMPLETION, TaskAction.REJECT_COMPLETION))

    if status in (TaskStatus.NOT_YET_STARTED, TaskStatus.IN_PROGRESS) and _is_overdue(task, now):
        actions.add(TaskAction.MARK_DELAYED)

    # 非终态均可由管理员重开；下方统一剔除非管理员的管理动作
    actions.add(TaskAction.REOPEN)

    if not role.is_admin:
        actions -= ADMIN_ACTIONS
    return frozenset(actions)


def can_perform(
    task: Task,
    action: TaskAction,
    settings: TaskSettings,
    role: UserRole,
    *,
    now: datetime | None = None,
) -> bool:
    """判断是否可执行某动作"""
    return action in allowed_actions(task, settings, role, now=now)


def _clean_reason(reason: str | None) -> str:
    return (reason or "").strip()[:REASON_MAX_LENGTH]


def apply_action(
    task: Task,
    action: TaskAction,
    settings: TaskSettings,
    role: UserRole,
    *,
    reason: str | None = None,
    otp_verified: bool = False,
    now: datetime | None = None,
) -> TransitionResult:
    """执行状态流转，返回新任务（version+1）

    Args:
        task: 当前任务（不会被修改）
        action: 要执行的动作
        settings: 任务设置
        role: 操作者角色
        reason: 驳回/重开原因
        otp_verified: OTP 是否已校验通过（仅 complete 使用）
        now: 流转时间

    Returns:
        TransitionResult

    Raises:
        TransitionRefusedError: 守卫条件不满足
        OtpRequiredError: 启用 OTP 且未校验时执行 complete
    """
    now = now or datetime.now(UTC)
    if not can_perform(task, action, settings, role, now=now):
        detail = "admin role required" if action in ADMIN_ACTIONS and not role.is_admin else ""
        raise TransitionRefusedError(task, action, detail)

    cleaned = _clean_reason(reason)
    if action in (TaskAction.REJECT, TaskAction.REOPEN) and not cleaned:
        raise TransitionRefusedError(task, action, "a reason is required")

    if action is TaskAction.COMPLETE and settings.enable_otp_verification and not otp_verified:
        raise OtpRequiredError(task.task_id)

    updates: dict = {}
    message = ""
    match action:
        case TaskAction.START | TaskAction.RESUME:
            updates["status"] = TaskStatus.IN_PROGRESS
            message = "Task is now in progress"
        case TaskAction.APPROVE:
            updates["status"] = TaskStatus.NOT_YET_STARTED
            message = "Task approved"
        case TaskAction.REJECT:
            updates.update(status=TaskStatus.REJECTED, rejection_reason=cleaned)
            message = "Task rejected"
        case TaskAction.HOLD:
            updates["status"] = TaskStatus.HOLD
            message = "Task put on hold"
        case TaskAction.COMPLETE:
            if settings.require_approval_on_complete:
                updates.update(status=TaskStatus.PENDING, pending_completion=True)
                message = "Task submitted for completion approval"
            else:
                updates.update(status=TaskStatus.COMPLETED, completed_date=now)
                message = "Task completed"
        case TaskAction.APPROVE_COMPLETION:
            updates.update(
                status=TaskStatus.COMPLETED,
                pending_completion=False,
                completed_date=now,
            )
            message = "Task completion approved"
        case TaskAction.REJECT_COMPLETION:
            updates.update(status=TaskStatus.IN_PROGRESS, pending_completion=False)
            if cleaned:
                updates["rejection_reason"] = cleaned
            message = "Task completion rejected"
        case TaskAction.REOPEN:
            updates.update(
                status=TaskStatus.REOPENED,
                pending_completion=False,
                reopen_reason=cleaned,
                completed_date=None,
            )
            message = "Task reopened"
        case TaskAction.MARK_DELAYED:
            updates["status"] = TaskStatus.DELAYED
            message = "Task marked as delayed"

    updates["version"] = task.version + 1
    updates["updated_at"] = now
    new_task = task.model_copy(update=updates)
    return TransitionResult(
        task=new_task,
        action=action,
        from_status=task.status,
        to_status=new_task.status,
        message=message,
    )


def predict_status(action: TaskAction, settings: TaskSettings) -> TaskStatus:
    """动作执行后的目标状态（不校验守卫）"""
    match action:
        case TaskAction.START | TaskAction.RESUME | TaskAction.REJECT_COMPLETION:
            return TaskStatus.IN_PROGRESS
        case TaskAction.APPROVE:
            return TaskStatus.NOT_YET_STARTED
        case TaskAction.REJECT:
            return TaskStatus.REJECTED
        case TaskAction.HOLD:
            return TaskStatus.HOLD
        case TaskAction.COMPLETE:
            if settings.require_approval_on_complete:
                return TaskStatus.PENDING
            return TaskStatus.COMPLETED
        case TaskAction.APPROVE_COMPLETION:
            return TaskStatus.COMPLETED
        case TaskAction.REOPEN:
            return TaskStatus.REOPENED
        case TaskAction.MARK_DELAYED:
            return TaskStatus.DELAYED
    raise ValueError(f"unknown action: {action}")


def action_for_status(
    task: Task,
    target: TaskStatus,
    settings: TaskSettings,
    role: UserRole,
    *,
    now: datetime | None = None,
) -> TaskAction | None:
    """按目标状态反查当前可执行的动作（兼容只提交 status 的旧请求）

    Returns:
        匹配的动作；没有可达动作时返回 None
    """
    candidates = sorted(
        action
        for action in allowed_actions(task, settings, role, now=now)
        if predict_status(action, settings) is target
    )
    return candidates[0] if candidates else None


def display_status(task: Task, viewer: DisplayViewer) -> str:
    """按视角计算徽章标签

    完成审批中的任务：执行人看到 Completed，管理员看到 Pending。
    """
    if task.pending_completion:
        return "Completed" if viewer is DisplayViewer.ASSIGNEE else "Pending"
    return _BADGE_LABELS[task.status]
