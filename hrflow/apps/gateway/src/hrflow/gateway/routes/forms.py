"""问卷路由

GET  /api/forms/templates: 模板列表
POST /api/forms/templates: 新建模板（管理员）
GET  /api/forms/responses/{task_id}/{template_id}: 查询回答（未填写返回 404）
PUT  /api/forms/responses/{task_id}/{template_id}: 提交或覆盖回答
"""

from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import APIRouter, Depends
from hrflow.core.models import FormField, FormTemplate
from hrflow.core.store import StoredUser, StoreGroup
from pydantic import BaseModel, Field
from ulid import ULID

from ..deps import get_current_user, get_store_group, get_task_service, require_admin
from ..errors import GatewayError
from ..services.task_service import TaskService

log = structlog.get_logger()

router = APIRouter(prefix="/api/forms")


class TemplateCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    fields: list[FormField] = Field(default_factory=list)


class FormAnswersRequest(BaseModel):
    answers: dict[str, Any] = Field(default_factory=dict)


@router.get("/templates")
async def list_templates(
    _user: StoredUser = Depends(get_current_user),
    store_group: StoreGroup = Depends(get_store_group),
):
    templates = await store_group.form_store.list_templates()
    return {
        "success": True,
        "data": {"templates": [t.model_dump(mode="json") for t in templates]},
    }


@router.post("/templates", status_code=201)
async def create_template(
    body: TemplateCreateRequest,
    user: StoredUser = Depends(require_admin),
    store_group: StoreGroup = Depends(get_store_group),
):
    keys = [f.key for f in body.fields]
    if len(keys) != len(set(keys)):
        raise GatewayError(400, "VALIDATION_ERROR", "Field keys must be unique")
    template = FormTemplate(
        template_id=str(ULID()),
        name=body.name,
        fields=body.fields,
        created_at=datetime.now(UTC),
    )
    async with store_group.write_lock:
        await store_group.form_store.create_template(template)
    log.info("form_template_created", template_id=template.template_id, user_id=user.user_id)
    return {"success": True, "data": {"template": template.model_dump(mode="json")}}


@router.get("/responses/{task_id}/{template_id}")
async def get_response(
    task_id: str,
    template_id: str,
    user: StoredUser = Depends(get_current_user),
    store_group: StoreGroup = Depends(get_store_group),
    service: TaskService = Depends(get_task_service),
):
    await service.get_task(task_id, user)
    response = await store_group.form_store.get_response(task_id, template_id)
    if response is None:
        raise GatewayError(404, "RESPONSE_NOT_FOUND", "Form has not been submitted for this task")
    return {"success": True, "data": {"response": response.model_dump(mode="json")}}


@router.put("/responses/{task_id}/{template_id}")
async def submit_response(
    task_id: str,
    template_id: str,
    body: FormAnswersRequest,
    user: StoredUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    response, replaced = await service.submit_form_response(
        task_id, template_id, body.answers, user
    )
    return {
        "success": True,
        "data": {"response": response.model_dump(mode="json"), "replaced": replaced},
    }
