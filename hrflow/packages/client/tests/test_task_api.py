"""TaskApi 测试 -- 信封解析、错误映射、/customers 镜像"""

import json

import httpx
import pytest
from hrflow.client import (
    ApiError,
    AuthenticatedClient,
    CustomerTaskApi,
    MemorySessionStorage,
    SessionStore,
    SessionTerminatedError,
    TaskApi,
)
from hrflow.core.models import TaskAction, TaskStatus


def _api(handler, config, user, api_cls=TaskApi):
    session = SessionStore(MemorySessionStorage())
    session.set_credentials(user, "tok")
    client = AuthenticatedClient(
        config=config,
        session_store=session,
        transport=httpx.MockTransport(handler),
    )
    return api_cls(client), client


class TestTaskApi:
    async def test_list_tasks_sends_filters(self, client_config, employee, task_factory):
        task = task_factory()
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, json={"success": True, "data": {"tasks": [task.model_dump(mode="json")]}}
            )

        api, client = _api(handler, client_config, employee)
        async with client:
            tasks = await api.list_tasks(status=TaskStatus.IN_PROGRESS, assigned_to="emp-1")

        assert tasks == [task]
        params = seen[0].url.params
        assert params["status"] == "In progress"
        assert params["assigned_to"] == "emp-1"

    async def test_update_status_body(self, client_config, employee, task_factory):
        task = task_factory(status=TaskStatus.IN_PROGRESS, version=2)
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "PATCH"
            assert request.url.path == f"/api/tasks/{task.task_id}/status"
            bodies.append(json.loads(request.content))
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "data": {"task": task.model_dump(mode="json"), "message": "Task put on hold"},
                },
            )

        api, client = _api(handler, client_config, employee)
        async with client:
            outcome = await api.update_status(task.task_id, TaskAction.HOLD, version=1)

        assert bodies == [{"action": "hold", "version": 1}]
        assert outcome.message == "Task put on hold"
        assert outcome.task == task

    async def test_error_maps_to_api_error(self, client_config, employee):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                409,
                json={"error": {"code": "TRANSITION_REFUSED", "message": "Not allowed"}},
            )

        api, client = _api(handler, client_config, employee)
        async with client:
            with pytest.raises(ApiError) as exc_info:
                await api.approve("t1")

        err = exc_info.value
        assert err.status_code == 409
        assert err.code == "TRANSITION_REFUSED"
        assert err.message == "Not allowed"
        assert not err.recoverable

    async def test_error_without_body_uses_fallback(self, client_config, employee):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="oops")

        api, client = _api(handler, client_config, employee)
        async with client:
            with pytest.raises(ApiError, match="Failed to reopen task") as exc_info:
                await api.reopen("t1", "because")
        assert exc_info.value.recoverable

    async def test_deactivation_raises_session_terminated(self, client_config, employee):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                403, json={"error": {"code": "ACCOUNT_DEACTIVATED", "message": "Account is deactivated"}}
            )

        api, client = _api(handler, client_config, employee)
        async with client:
            with pytest.raises(SessionTerminatedError):
                await api.get_stats()
            assert not client.is_authenticated

    async def test_verify_otp_and_form_helpers(self, client_config, employee, task_factory):
        task = task_factory(status=TaskStatus.COMPLETED)
        seen: list[tuple[str, str, bytes]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, request.url.path, request.content))
            if request.url.path.startswith("/api/forms/responses") and request.method == "GET":
                return httpx.Response(404, json={"error": {"code": "RESPONSE_NOT_FOUND", "message": "x"}})
            return httpx.Response(
                200,
                json={"success": True, "data": {"task": task.model_dump(mode="json")}},
            )

        api, client = _api(handler, client_config, employee)
        async with client:
            outcome = await api.verify_otp(task.task_id, "123456")
            assert not await api.has_form_response(task.task_id, "tpl-1")

        assert outcome.task.status is TaskStatus.COMPLETED
        assert seen[0][:2] == ("POST", f"/api/tasks/{task.task_id}/verify-otp")
        assert json.loads(seen[0][2]) == {"otp": "123456"}


class TestCustomerTaskApi:
    async def test_uses_customer_resource_and_keys(self, client_config, admin, task_factory):
        task = task_factory()

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/customers":
                data = {"customers": [task.model_dump(mode="json")]}
            else:
                assert request.url.path == f"/api/customers/{task.task_id}/approve-completion"
                data = {"customer": task.model_dump(mode="json"), "message": "ok"}
            return httpx.Response(200, json={"success": True, "data": data})

        api, client = _api(handler, client_config, admin, CustomerTaskApi)
        async with client:
            assert await api.list_tasks() == [task]
            outcome = await api.approve_completion(task.task_id)
        assert outcome.task == task
