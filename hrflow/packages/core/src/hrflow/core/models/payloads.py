"""Event Payload 子类型

所有事件的结构化 payload 定义。
TASK_ASSIGNED 携带完整任务快照，STATE_TRANSITION 携带状态差量，
二者足以从事件流重建 tasks 投影。
"""

from typing import Any

from pydantic import BaseModel, Field

from .enums import TaskAction, TaskStatus


class TaskAssignedPayload(BaseModel):
    """TASK_ASSIGNED 事件 payload（任务创建快照）"""

    task: dict[str, Any] = Field(description="Task.model_dump(mode='json')")


class StateTransitionPayload(BaseModel):
    """STATE_TRANSITION 事件 payload"""

    action: TaskAction
    from_status: TaskStatus
    to_status: TaskStatus
    pending_completion: bool = Field(default=False, description="流转后的完成审批标记")
    reason: str = Field(default="")
    completed_date: str | None = Field(default=None, description="流转后的完成时间（ISO 8601）")
    version: int = Field(description="流转后的任务版本")


class OtpRequestedPayload(BaseModel):
    """OTP_REQUESTED 事件 payload（不含明文 OTP）"""

    expires_at: str
    channel: str = Field(default="email")


class OtpVerificationPayload(BaseModel):
    """OTP_VERIFIED / OTP_REJECTED 事件 payload"""

    attempts: int
    reason: str = Field(default="")


class FormSubmittedPayload(BaseModel):
    """FORM_SUBMITTED 事件 payload"""

    template_id: str
    answer_count: int
    replaced: bool = Field(default=False, description="是否覆盖了已有回答")
