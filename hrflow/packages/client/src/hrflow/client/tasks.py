"""TaskApi -- 任务接口的类型化封装

所有响应使用 {success, data: {...}} 信封，用 pydantic 校验。
非 2xx 响应抛出 ApiError，message 取自 error.message（缺失时用兜底文案）。
CustomerTaskApi 是 /customers 下的镜像接口，实体键为 customer。
"""

from datetime import datetime
from typing import Any

import httpx
import structlog
from hrflow.core.models import (
    Event,
    FormResponse,
    FormTemplate,
    Task,
    TaskAction,
    TaskCreate,
    TaskSettings,
    TaskStats,
    TaskStatus,
)
from pydantic import BaseModel, Field

from .client import AuthenticatedClient, error_message, is_deactivation_response
from .exceptions import ApiError, SessionTerminatedError

log = structlog.get_logger()


class ApiEnvelope(BaseModel):
    """响应信封"""

    success: bool
    data: dict[str, Any] = Field(default_factory=dict)


class TransitionOutcome(BaseModel):
    """状态流转结果"""

    task: Task
    message: str = ""


class OtpIssued(BaseModel):
    """OTP 已签发"""

    expires_at: datetime
    message: str = ""


class TaskApi:
    """/tasks 接口"""

    resource = "/tasks"
    entity_key = "task"
    collection_key = "tasks"

    def __init__(self, client: AuthenticatedClient) -> None:
        self._client = client

    # ---- 基础 ----

    def _path(self, *parts: str) -> str:
        return "/".join((self.resource, *parts))

    async def _request(
        self,
        method: str,
        path: str,
        fallback: str,
        **kwargs: Any,
    ) -> dict[str, Any]:
        response = await self._client.send(method, path, **kwargs)
        return self._unwrap(response, fallback)

    @staticmethod
    def _unwrap(response: httpx.Response, fallback: str) -> dict[str, Any]:
        if is_deactivation_response(response):
            raise SessionTerminatedError(error_message(response, "Account is deactivated"))
        if not response.is_success:
            payload = None
            code = None
            try:
                payload = response.json()
                error = payload.get("error") if isinstance(payload, dict) else None
                if isinstance(error, dict):
                    code = error.get("code")
            except ValueError:
                pass
            message = error_message(response, fallback)
            log.info("api_request_failed", status_code=response.status_code, code=code)
            raise ApiError(response.status_code, message, code=code, payload=payload)
        try:
            envelope = ApiEnvelope.model_validate(response.json())
        except ValueError as e:
            raise ApiError(response.status_code, fallback) from e
        if not envelope.success:
            raise ApiError(response.status_code, error_message(response, fallback))
        return envelope.data

    def _task_from(self, data: dict[str, Any]) -> Task:
        return Task.model_validate(data[self.entity_key])

    def _outcome_from(self, data: dict[str, Any]) -> TransitionOutcome:
        return TransitionOutcome(task=self._task_from(data), message=data.get("message", ""))

    # ---- 查询 ----

    async def list_tasks(
        self,
        status: TaskStatus | None = None,
        assigned_to: str | None = None,
    ) -> list[Task]:
        params: dict[str, str] = {}
        if status is not None:
            params["status"] = status.value
        if assigned_to is not None:
            params["assigned_to"] = assigned_to
        data = await self._request("GET", self.resource, "Failed to load tasks", params=params)
        return [Task.model_validate(item) for item in data.get(self.collection_key, [])]

    async def get_task(self, task_id: str) -> Task:
        data = await self._request("GET", self._path(task_id), "Failed to load task")
        return self._task_from(data)

    async def get_events(self, task_id: str) -> list[Event]:
        data = await self._request("GET", self._path(task_id, "events"), "Failed to load history")
        return [Event.model_validate(item) for item in data.get("events", [])]

    async def get_stats(self) -> TaskStats:
        data = await self._request("GET", self._path("stats"), "Failed to load statistics")
        return TaskStats.model_validate(data["stats"])

    # ---- 写操作 ----

    async def create_task(self, draft: TaskCreate) -> Task:
        data = await self._request(
            "POST",
            self.resource,
            "Failed to assign task",
            json=draft.model_dump(mode="json"),
        )
        return self._task_from(data)

    async def update_status(
        self,
        task_id: str,
        action: TaskAction | None = None,
        *,
        status: TaskStatus | None = None,
        reason: str | None = None,
        version: int | None = None,
    ) -> TransitionOutcome:
        """PATCH /{id}/status，按动作（或兼容旧接口按目标状态）流转"""
        body: dict[str, Any] = {}
        if action is not None:
            body["action"] = action.value
        if status is not None:
            body["status"] = status.value
        if reason is not None:
            body["reason"] = reason
        if version is not None:
            body["version"] = version
        data = await self._request(
            "PATCH",
            self._path(task_id, "status"),
            "Failed to update task status",
            json=body,
        )
        return self._outcome_from(data)

    async def _post_action(
        self,
        task_id: str,
        endpoint: str,
        fallback: str,
        body: dict[str, Any] | None = None,
    ) -> TransitionOutcome:
        data = await self._request("POST", self._path(task_id, endpoint), fallback, json=body or {})
        return self._outcome_from(data)

    async def approve(self, task_id: str) -> TransitionOutcome:
        return await self._post_action(task_id, "approve", "Failed to approve task")

    async def reject(self, task_id: str, reason: str) -> TransitionOutcome:
        return await self._post_action(task_id, "reject", "Failed to reject task", {"reason": reason})

    async def approve_completion(self, task_id: str) -> TransitionOutcome:
        return await self._post_action(
            task_id, "approve-completion", "Failed to approve task completion"
        )

    async def reject_completion(self, task_id: str, reason: str | None = None) -> TransitionOutcome:
        body = {"reason": reason} if reason else None
        return await self._post_action(
            task_id, "reject-completion", "Failed to reject task completion", body
        )

    async def reopen(self, task_id: str, reason: str) -> TransitionOutcome:
        return await self._post_action(task_id, "reopen", "Failed to reopen task", {"reason": reason})

    async def generate_otp(self, task_id: str) -> OtpIssued:
        data = await self._request(
            "POST", self._path(task_id, "generate-otp"), "Failed to generate OTP", json={}
        )
        return OtpIssued.model_validate(data)

    async def verify_otp(self, task_id: str, otp: str) -> TransitionOutcome:
        return await self._post_action(task_id, "verify-otp", "Failed to verify OTP", {"otp": otp})

    # ---- 设置 / 表单 ----

    async def get_settings(self) -> TaskSettings:
        data = await self._request("GET", "/settings/tasks", "Failed to load task settings")
        return TaskSettings.model_validate(data["settings"])

    async def update_settings(self, settings: TaskSettings) -> TaskSettings:
        data = await self._request(
            "PUT",
            "/settings/tasks",
            "Failed to update task settings",
            json=settings.model_dump(mode="json"),
        )
        return TaskSettings.model_validate(data["settings"])

    async def list_form_templates(self) -> list[FormTemplate]:
        data = await self._request("GET", "/forms/templates", "Failed to load forms")
        return [FormTemplate.model_validate(item) for item in data.get("templates", [])]

    async def has_form_response(self, task_id: str, template_id: str) -> bool:
        """问卷是否已填写（404 视为未填写）"""
        response = await self._client.send("GET", f"/forms/responses/{task_id}/{template_id}")
        if response.status_code == 404:
            return False
        self._unwrap(response, "Failed to check form response")
        return True

    async def submit_form_response(
        self,
        task_id: str,
        template_id: str,
        answers: dict[str, Any],
    ) -> FormResponse:
        data = await self._request(
            "PUT",
            f"/forms/responses/{task_id}/{template_id}",
            "Failed to submit form",
            json={"answers": answers},
        )
        return FormResponse.model_validate(data["response"])


class CustomerTaskApi(TaskApi):
    """/customers 镜像接口"""

    resource = "/customers"
    entity_key = "customer"
    collection_key = "customers"
