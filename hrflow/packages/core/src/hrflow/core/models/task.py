"""Task Domain Model -- 指派给外勤员工、关联客户的工作单元

tasks 表是 events 的物化视图（projection），
所有状态更新必须通过写入事件触发。

pending_completion / reopen_reason 是一等字段；
旧接口放在 customFields 里的同名键在边界处提升为类型化字段。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, model_validator

from .enums import TaskStatus

# 旧 customFields 中承载状态语义的键 -> Task 字段
_PROMOTED_CUSTOM_FIELDS = {
    "pendingCompletion": "pending_completion",
    "reopenReason": "reopen_reason",
    "rejectionReason": "rejection_reason",
}


class Task(BaseModel):
    """Task 数据模型

    不变式：pending_completion=True 时权威状态必须是 PENDING
    （执行人视角展示为 Completed，管理员视角展示为 Pending）。
    """

    task_id: str = Field(description="唯一标识，ULID 格式")
    title: str = Field(description="任务标题")
    description: str = Field(default="", description="任务描述")
    customer_id: str | None = Field(default=None, description="关联客户 ID")
    assigned_to: str = Field(description="执行人（员工）ID")
    assigned_by: str | None = Field(default=None, description="指派人 ID")
    assigned_date: datetime = Field(description="指派时间")
    expected_completion_date: datetime | None = Field(default=None, description="预计完成时间")
    earliest_completion_date: datetime | None = Field(default=None)
    latest_completion_date: datetime | None = Field(default=None)
    completed_date: datetime | None = Field(default=None, description="实际完成时间")
    status: TaskStatus = Field(default=TaskStatus.NOT_YET_STARTED, description="当前状态")
    pending_completion: bool = Field(default=False, description="是否等待管理员完成审批")
    reopen_reason: str | None = Field(default=None, description="重开原因")
    rejection_reason: str | None = Field(default=None, description="驳回原因")
    custom_fields: dict[str, Any] = Field(default_factory=dict, description="自由扩展字段")
    version: int = Field(default=1, ge=1, description="乐观并发版本号")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")

    @model_validator(mode="before")
    @classmethod
    def _promote_custom_fields(cls, data: Any) -> Any:
        """把 customFields 中的状态键提升为类型化字段"""
        if not isinstance(data, dict):
            return data
        promoted = dict(data)
        custom = promoted.pop("customFields", None)
        if "custom_fields" in promoted:
            custom = promoted["custom_fields"]
        if not isinstance(custom, dict):
            return promoted
        remaining = dict(custom)
        for legacy_key, field_name in _PROMOTED_CUSTOM_FIELDS.items():
            if legacy_key in remaining:
                value = remaining.pop(legacy_key)
                promoted.setdefault(field_name, value)
        promoted["custom_fields"] = remaining
        return promoted

    @model_validator(mode="after")
    def _check_pending_completion(self) -> "Task":
        if self.pending_completion and self.status is not TaskStatus.PENDING:
            raise ValueError(
                f"pending_completion requires status {TaskStatus.PENDING.value!r}, "
                f"got {self.status.value!r}"
            )
        return self

    @property
    def awaiting_initial_approval(self) -> bool:
        """处于"待初次审批"门（与完成审批门互斥）"""
        return (
            self.status in (TaskStatus.PENDING, TaskStatus.REOPENED)
            and not self.pending_completion
        )


class TaskStats(BaseModel):
    """任务统计（看板计数）"""

    total_tasks: int = 0
    not_yet_started: int = 0
    pending: int = 0
    in_progress: int = 0
    delayed_tasks: int = 0
    completed_tasks: int = 0
    reopened_tasks: int = 0
    rejected_tasks: int = 0
    on_hold: int = 0


class TaskCreate(BaseModel):
    """指派任务请求体"""

    title: str = Field(min_length=1, description="任务标题")
    description: str = Field(default="")
    assigned_to: str = Field(min_length=1, description="执行人 ID")
    customer_id: str | None = Field(default=None)
    expected_completion_date: datetime | None = Field(default=None)
    earliest_completion_date: datetime | None = Field(default=None)
    latest_completion_date: datetime | None = Field(default=None)
    custom_fields: dict[str, Any] = Field(default_factory=dict)
