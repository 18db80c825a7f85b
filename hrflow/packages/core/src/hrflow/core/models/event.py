"""Event Domain Model -- 任务审计事件

事件表 append-only，不允许更新或删除。
event_id 使用 ULID 格式，时间有序。
task_seq 同一 task 内严格单调递增。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import ActorType, EventType


class Event(BaseModel):
    """Event 数据模型

    事件表 append-only，不允许更新或删除。
    """

    event_id: str = Field(description="唯一标识，ULID 格式，时间有序")
    task_id: str = Field(description="关联的 Task ID")
    task_seq: int = Field(description="任务内序号，严格单调递增")
    ts: datetime = Field(description="事件时间戳")
    type: EventType = Field(description="事件类型")
    schema_version: int = Field(default=1, description="Schema 版本号")
    actor: ActorType = Field(description="操作者类型")
    actor_id: str = Field(default="", description="操作者用户 ID")
    payload: dict[str, Any] = Field(default_factory=dict, description="结构化 payload")
    trace_id: str = Field(description="追踪标识，同一 task 共享")
