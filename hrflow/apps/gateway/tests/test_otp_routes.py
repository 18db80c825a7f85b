"""OTP 路由测试

测试内容：
1. generate-otp 只经投递通道发出验证码，响应与事件中不含明文
2. 错误验证码累加次数并保留 challenge，正确验证码完成任务
3. 次数耗尽 / 未请求 / 未启用（含签发后关闭 OTP）
"""

import pytest_asyncio
from httpx import AsyncClient
from hrflow.core.models import TaskSettings


@pytest_asyncio.fixture
async def otp_task(client: AsyncClient, store_group, manager_user, employee_user, auth_headers):
    """已开始、启用 OTP 的任务（max_attempts=2 便于测试耗尽）"""
    settings = TaskSettings(auto_approve=True, enable_otp_verification=True)
    settings.otp.max_attempts = 2
    await store_group.settings_store.save_settings(settings)

    resp = await client.post(
        "/api/tasks",
        json={"title": "Fit meter", "assigned_to": employee_user.user_id},
        headers=auth_headers(manager_user),
    )
    task_id = resp.json()["data"]["task"]["task_id"]
    await client.patch(
        f"/api/tasks/{task_id}/status",
        json={"action": "start"},
        headers=auth_headers(employee_user),
    )
    return task_id


def _wrong(code: str) -> str:
    return "0" * len(code) if code != "0" * len(code) else "1" * len(code)


class TestGenerateOtp:
    async def test_code_only_goes_to_outbox(
        self, client, otp_task, outbox, employee_user, auth_headers
    ):
        resp = await client.post(
            f"/api/tasks/{otp_task}/generate-otp", headers=auth_headers(employee_user)
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["message"] == "OTP sent to the customer"
        assert data["expires_at"]

        code = outbox.last_code(otp_task)
        assert code is not None
        assert code not in resp.text

        events = await client.get(
            f"/api/tasks/{otp_task}/events", headers=auth_headers(employee_user)
        )
        assert code not in events.text
        assert events.json()["data"]["events"][-1]["type"] == "OTP_REQUESTED"

    async def test_disabled(self, client, store_group, otp_task, employee_user, auth_headers):
        await store_group.settings_store.save_settings(TaskSettings(auto_approve=True))
        resp = await client.post(
            f"/api/tasks/{otp_task}/generate-otp", headers=auth_headers(employee_user)
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "OTP_DISABLED"

    async def test_other_user_forbidden(self, client, otp_task, manager_user, auth_headers):
        resp = await client.post(
            f"/api/tasks/{otp_task}/generate-otp", headers=auth_headers(manager_user)
        )
        assert resp.status_code == 403


class TestVerifyOtp:
    async def test_wrong_then_right(self, client, otp_task, outbox, employee_user, auth_headers):
        headers = auth_headers(employee_user)
        await client.post(f"/api/tasks/{otp_task}/generate-otp", headers=headers)
        code = outbox.last_code(otp_task)

        resp = await client.post(
            f"/api/tasks/{otp_task}/verify-otp", json={"otp": _wrong(code)}, headers=headers
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == {
            "code": "OTP_INVALID",
            "message": "Invalid OTP, 1 attempt(s) remaining",
        }

        task = await client.get(f"/api/tasks/{otp_task}", headers=headers)
        assert task.json()["data"]["task"]["status"] == "In progress"

        resp = await client.post(
            f"/api/tasks/{otp_task}/verify-otp", json={"otp": code}, headers=headers
        )
        assert resp.status_code == 200
        done = resp.json()["data"]["task"]
        assert done["status"] == "Completed Tasks"

        events = await client.get(f"/api/tasks/{otp_task}/events", headers=headers)
        types = [e["type"] for e in events.json()["data"]["events"]]
        assert types[-4:] == ["OTP_REQUESTED", "OTP_REJECTED", "OTP_VERIFIED", "STATE_TRANSITION"]
        seqs = [e["task_seq"] for e in events.json()["data"]["events"]]
        assert seqs == list(range(1, len(seqs) + 1))

    async def test_attempts_exhausted(
        self, client, otp_task, outbox, employee_user, auth_headers
    ):
        headers = auth_headers(employee_user)
        await client.post(f"/api/tasks/{otp_task}/generate-otp", headers=headers)
        code = outbox.last_code(otp_task)
        url = f"/api/tasks/{otp_task}/verify-otp"

        for _ in range(2):
            resp = await client.post(url, json={"otp": _wrong(code)}, headers=headers)
            assert resp.json()["error"]["code"] == "OTP_INVALID"

        resp = await client.post(url, json={"otp": code}, headers=headers)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "OTP_ATTEMPTS_EXCEEDED"

        # 重新生成后可以继续
        await client.post(f"/api/tasks/{otp_task}/generate-otp", headers=headers)
        resp = await client.post(url, json={"otp": outbox.last_code(otp_task)}, headers=headers)
        assert resp.status_code == 200

    async def test_new_code_replaces_old(
        self, client, otp_task, outbox, employee_user, auth_headers
    ):
        headers = auth_headers(employee_user)
        await client.post(f"/api/tasks/{otp_task}/generate-otp", headers=headers)
        first = outbox.last_code(otp_task)
        await client.post(f"/api/tasks/{otp_task}/generate-otp", headers=headers)
        second = outbox.last_code(otp_task)

        if first != second:
            resp = await client.post(
                f"/api/tasks/{otp_task}/verify-otp", json={"otp": first}, headers=headers
            )
            assert resp.json()["error"]["code"] == "OTP_INVALID"
        resp = await client.post(
            f"/api/tasks/{otp_task}/verify-otp", json={"otp": second}, headers=headers
        )
        assert resp.status_code == 200

    async def test_not_requested(self, client, otp_task, employee_user, auth_headers):
        resp = await client.post(
            f"/api/tasks/{otp_task}/verify-otp",
            json={"otp": "123456"},
            headers=auth_headers(employee_user),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "OTP_NOT_REQUESTED"

    async def test_blank_code(self, client, otp_task, employee_user, auth_headers):
        resp = await client.post(
            f"/api/tasks/{otp_task}/verify-otp",
            json={"otp": "  "},
            headers=auth_headers(employee_user),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "OTP_REQUIRED"

    async def test_challenge_unusable_after_otp_disabled(
        self, client, store_group, otp_task, outbox, employee_user, auth_headers
    ):
        headers = auth_headers(employee_user)
        await client.post(f"/api/tasks/{otp_task}/generate-otp", headers=headers)
        code = outbox.last_code(otp_task)

        await store_group.settings_store.save_settings(TaskSettings(auto_approve=True))
        resp = await client.post(
            f"/api/tasks/{otp_task}/verify-otp", json={"otp": code}, headers=headers
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "OTP_DISABLED"

        task = await client.get(f"/api/tasks/{otp_task}", headers=headers)
        assert task.json()["data"]["task"]["status"] == "In progress"
