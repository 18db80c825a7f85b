"""任务设置路由

GET /api/settings/tasks: 读取当前设置（任意登录用户）
PUT /api/settings/tasks: 整体替换设置（管理员）
"""

import structlog
from fastapi import APIRouter, Depends
from hrflow.core.models import TaskSettings
from hrflow.core.store import StoredUser, StoreGroup

from ..deps import get_current_user, get_store_group, require_admin

log = structlog.get_logger()

router = APIRouter(prefix="/api/settings")


@router.get("/tasks")
async def get_task_settings(
    _user: StoredUser = Depends(get_current_user),
    store_group: StoreGroup = Depends(get_store_group),
):
    settings = await store_group.settings_store.get_settings()
    return {"success": True, "data": {"settings": settings.model_dump(mode="json")}}


@router.put("/tasks")
async def update_task_settings(
    body: TaskSettings,
    user: StoredUser = Depends(require_admin),
    store_group: StoreGroup = Depends(get_store_group),
):
    """设置变更只影响之后的流转，已存在的任务状态不变"""
    async with store_group.write_lock:
        await store_group.settings_store.save_settings(body)
    log.info(
        "task_settings_updated",
        user_id=user.user_id,
        auto_approve=body.auto_approve,
        require_approval_on_complete=body.require_approval_on_complete,
        enable_otp_verification=body.enable_otp_verification,
    )
    return {"success": True, "data": {"settings": body.model_dump(mode="json")}}
