"""FormTemplate / FormResponse -- 任务附带的问卷与员工填写结果

回答以 (task_id, template_id) 为键，重复提交覆盖而非新增。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class FormField(BaseModel):
    """问卷字段"""

    key: str
    label: str
    field_type: str = Field(default="text", description="text / number / select / checkbox")
    required: bool = False
    options: list[str] = Field(default_factory=list)


class FormTemplate(BaseModel):
    template_id: str = Field(description="ULID")
    name: str
    fields: list[FormField] = Field(default_factory=list)
    created_at: datetime


class FormResponse(BaseModel):
    task_id: str
    template_id: str
    submitted_by: str
    answers: dict[str, Any] = Field(default_factory=dict)
    submitted_at: datetime
