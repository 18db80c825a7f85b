"""hrflow Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .enums import (
    ADMIN_ACTIONS,
    TERMINAL_STATES,
    ActorType,
    DisplayViewer,
    EventType,
    TaskAction,
    TaskStatus,
    UserRole,
)
from .event import Event
from .form import FormField, FormResponse, FormTemplate
from .payloads import (
    FormSubmittedPayload,
    OtpRequestedPayload,
    OtpVerificationPayload,
    StateTransitionPayload,
    TaskAssignedPayload,
)
from .session import Session, UserProfile
from .settings import OtpPolicy, TaskSettings
from .task import Task, TaskCreate, TaskStats

__all__ = [
    # 枚举
    "TaskStatus",
    "TaskAction",
    "UserRole",
    "ActorType",
    "EventType",
    "DisplayViewer",
    "TERMINAL_STATES",
    "ADMIN_ACTIONS",
    # Task
    "Task",
    "TaskStats",
    "TaskCreate",
    "TaskSettings",
    "OtpPolicy",
    # Session
    "Session",
    "UserProfile",
    # Form
    "FormField",
    "FormTemplate",
    "FormResponse",
    # Event
    "Event",
    # Payloads
    "TaskAssignedPayload",
    "StateTransitionPayload",
    "OtpRequestedPayload",
    "OtpVerificationPayload",
    "FormSubmittedPayload",
]
