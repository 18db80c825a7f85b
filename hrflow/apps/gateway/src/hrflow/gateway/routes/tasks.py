"""任务路由 -- /api/tasks 与 /api/customers 镜像

两组路由语义一致，只有响应体中实体键不同（task / customer）。

GET    {prefix}: 任务列表，支持 status / assigned_to 筛选
POST   {prefix}: 指派任务
GET    {prefix}/stats: 看板计数
GET    {prefix}/{task_id}: 任务详情
GET    {prefix}/{task_id}/events: 审计事件
PATCH  {prefix}/{task_id}/status: 按动作（或目标状态）流转
POST   {prefix}/{task_id}/approve | reject | approve-completion | reject-completion | reopen
POST   {prefix}/{task_id}/generate-otp | verify-otp
"""

from fastapi import APIRouter, Depends, Query
from hrflow.core.lifecycle import TransitionResult
from hrflow.core.models import TaskAction, TaskCreate, TaskStatus
from hrflow.core.store import StoredUser
from pydantic import BaseModel, Field

from ..deps import get_current_user, get_task_service
from ..services.task_service import TaskService


class StatusUpdateRequest(BaseModel):
    """PATCH status 请求体；action 与 status 至少提供一个"""

    action: TaskAction | None = None
    status: TaskStatus | None = None
    reason: str | None = None
    version: int | None = Field(default=None, ge=1)


class ActionRequest(BaseModel):
    reason: str | None = None
    version: int | None = Field(default=None, ge=1)


class VerifyOtpRequest(BaseModel):
    otp: str = ""


def create_task_router(prefix: str, entity_key: str, collection_key: str) -> APIRouter:
    """按前缀与实体键生成一组任务路由"""
    router = APIRouter(prefix=prefix)

    def _outcome(result: TransitionResult) -> dict:
        return {
            "success": True,
            "data": {
                entity_key: result.task.model_dump(mode="json"),
                "message": result.message,
            },
        }

    @router.get("")
    async def list_tasks(
        status: TaskStatus | None = Query(default=None, description="按状态筛选"),
        assigned_to: str | None = Query(default=None, description="按执行人筛选"),
        user: StoredUser = Depends(get_current_user),
        service: TaskService = Depends(get_task_service),
    ):
        """查询任务列表，按 created_at 倒序"""
        tasks = await service.list_tasks(user, status=status, assigned_to=assigned_to)
        return {
            "success": True,
            "data": {collection_key: [t.model_dump(mode="json") for t in tasks]},
        }

    @router.post("", status_code=201)
    async def create_task(
        body: TaskCreate,
        user: StoredUser = Depends(get_current_user),
        service: TaskService = Depends(get_task_service),
    ):
        task = await service.create_task(body, user)
        return {
            "success": True,
            "data": {entity_key: task.model_dump(mode="json"), "message": "Task assigned"},
        }

    @router.get("/stats")
    async def get_stats(
        user: StoredUser = Depends(get_current_user),
        service: TaskService = Depends(get_task_service),
    ):
        stats = await service.get_stats(user)
        return {"success": True, "data": {"stats": stats.model_dump(mode="json")}}

    @router.get("/{task_id}")
    async def get_task(
        task_id: str,
        user: StoredUser = Depends(get_current_user),
        service: TaskService = Depends(get_task_service),
    ):
        task = await service.get_task(task_id, user)
        return {"success": True, "data": {entity_key: task.model_dump(mode="json")}}

    @router.get("/{task_id}/events")
    async def get_events(
        task_id: str,
        user: StoredUser = Depends(get_current_user),
        service: TaskService = Depends(get_task_service),
    ):
        events = await service.get_events(task_id, user)
        return {"success": True, "data": {"events": [e.model_dump(mode="json") for e in events]}}

    @router.patch("/{task_id}/status")
    async def update_status(
        task_id: str,
        body: StatusUpdateRequest,
        user: StoredUser = Depends(get_current_user),
        service: TaskService = Depends(get_task_service),
    ):
        result = await service.transition(
            task_id,
            user,
            body.action,
            target_status=body.status,
            reason=body.reason,
            expected_version=body.version,
        )
        return _outcome(result)

    def _register_action(path: str, action: TaskAction) -> None:
        async def endpoint(
            task_id: str,
            body: ActionRequest | None = None,
            user: StoredUser = Depends(get_current_user),
            service: TaskService = Depends(get_task_service),
        ):
            body = body or ActionRequest()
            result = await service.transition(
                task_id,
                user,
                action,
                reason=body.reason,
                expected_version=body.version,
            )
            return _outcome(result)

        endpoint.__name__ = f"{action.value}_task"
        router.add_api_route(f"/{{task_id}}/{path}", endpoint, methods=["POST"])

    _register_action("approve", TaskAction.APPROVE)
    _register_action("reject", TaskAction.REJECT)
    _register_action("approve-completion", TaskAction.APPROVE_COMPLETION)
    _register_action("reject-completion", TaskAction.REJECT_COMPLETION)
    _register_action("reopen", TaskAction.REOPEN)

    @router.post("/{task_id}/generate-otp")
    async def generate_otp(
        task_id: str,
        user: StoredUser = Depends(get_current_user),
        service: TaskService = Depends(get_task_service),
    ):
        """签发 OTP；验证码只经投递通道发出，不出现在响应中"""
        expires_at = await service.generate_otp(task_id, user)
        return {
            "success": True,
            "data": {
                "expires_at": expires_at.isoformat(),
                "message": "OTP sent to the customer",
            },
        }

    @router.post("/{task_id}/verify-otp")
    async def verify_otp(
        task_id: str,
        body: VerifyOtpRequest,
        user: StoredUser = Depends(get_current_user),
        service: TaskService = Depends(get_task_service),
    ):
        result = await service.verify_otp(task_id, body.otp, user)
        return _outcome(result)

    return router


tasks_router = create_task_router("/api/tasks", "task", "tasks")
customers_router = create_task_router("/api/customers", "customer", "customers")
