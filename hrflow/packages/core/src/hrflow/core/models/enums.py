"""枚举定义 -- 任务状态机、动作、角色、事件类型

TaskStatus 的取值即线上 wire 值（"Not yet Started" 等），
UI 层与传输层共享同一枚举，不再各自维护字符串。
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """Task 状态"""

    NOT_YET_STARTED = "Not yet Started"
    PENDING = "Pending"
    IN_PROGRESS = "In progress"
    DELAYED = "Delayed Tasks"
    COMPLETED = "Completed Tasks"
    REOPENED = "Reopened"
    REJECTED = "Rejected"
    HOLD = "Hold"


# 终态：已驳回、已（审批通过的）完成
TERMINAL_STATES: frozenset[TaskStatus] = frozenset(
    {
        TaskStatus.REJECTED,
        TaskStatus.COMPLETED,
    }
)


class TaskAction(StrEnum):
    """任务动作"""

    START = "start"
    APPROVE = "approve"
    REJECT = "reject"
    HOLD = "hold"
    RESUME = "resume"
    COMPLETE = "complete"
    APPROVE_COMPLETION = "approve_completion"
    REJECT_COMPLETION = "reject_completion"
    REOPEN = "reopen"
    MARK_DELAYED = "mark_delayed"


# 只有管理员可执行的动作
ADMIN_ACTIONS: frozenset[TaskAction] = frozenset(
    {
        TaskAction.APPROVE_COMPLETION,
        TaskAction.REJECT_COMPLETION,
        TaskAction.REOPEN,
    }
)


class UserRole(StrEnum):
    """用户角色"""

    ADMIN = "admin"
    HR = "hr"
    MANAGER = "manager"
    EMPLOYEE = "employee"

    @property
    def is_admin(self) -> bool:
        return self is UserRole.ADMIN


class ActorType(StrEnum):
    """事件操作者类型"""

    ASSIGNEE = "assignee"
    ADMIN = "admin"
    SYSTEM = "system"


class EventType(StrEnum):
    """事件类型"""

    TASK_ASSIGNED = "TASK_ASSIGNED"
    STATE_TRANSITION = "STATE_TRANSITION"
    OTP_REQUESTED = "OTP_REQUESTED"
    OTP_VERIFIED = "OTP_VERIFIED"
    OTP_REJECTED = "OTP_REJECTED"
    FORM_SUBMITTED = "FORM_SUBMITTED"


class DisplayViewer(StrEnum):
    """状态展示视角（同一任务对执行人和管理员展示不同标签）"""

    ASSIGNEE = "assignee"
    ADMIN = "admin"
