"""设置与问卷路由测试"""

import pytest_asyncio
from httpx import AsyncClient


class TestTaskSettingsRoutes:
    async def test_defaults_visible_to_everyone(self, client: AsyncClient, employee_user, auth_headers):
        resp = await client.get("/api/settings/tasks", headers=auth_headers(employee_user))
        assert resp.status_code == 200
        settings = resp.json()["data"]["settings"]
        assert settings["auto_approve"] is False
        assert settings["require_approval_on_complete"] is False
        assert settings["enable_otp_verification"] is False
        assert settings["otp"]["max_attempts"] >= 1

    async def test_admin_updates(self, client: AsyncClient, admin_user, auth_headers):
        headers = auth_headers(admin_user)
        resp = await client.put(
            "/api/settings/tasks",
            json={"auto_approve": True, "enable_otp_verification": True},
            headers=headers,
        )
        assert resp.status_code == 200

        resp = await client.get("/api/settings/tasks", headers=headers)
        settings = resp.json()["data"]["settings"]
        assert settings["auto_approve"] is True
        assert settings["enable_otp_verification"] is True

    async def test_non_admin_cannot_update(self, client: AsyncClient, manager_user, auth_headers):
        resp = await client.put(
            "/api/settings/tasks",
            json={"auto_approve": True},
            headers=auth_headers(manager_user),
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["message"] == "Admin role required"

    async def test_change_does_not_touch_existing_tasks(
        self, client: AsyncClient, admin_user, employee_user, auth_headers
    ):
        headers = auth_headers(admin_user)
        resp = await client.post(
            "/api/tasks",
            json={"title": "Survey", "assigned_to": employee_user.user_id},
            headers=headers,
        )
        task_id = resp.json()["data"]["task"]["task_id"]

        await client.put("/api/settings/tasks", json={"auto_approve": True}, headers=headers)

        resp = await client.get(f"/api/tasks/{task_id}", headers=headers)
        assert resp.json()["data"]["task"]["status"] == "Pending"


@pytest_asyncio.fixture
async def template(client: AsyncClient, admin_user, auth_headers) -> dict:
    resp = await client.post(
        "/api/forms/templates",
        json={
            "name": "Site survey",
            "fields": [
                {"key": "signal", "label": "Signal strength", "field_type": "number", "required": True},
                {"key": "notes", "label": "Notes"},
            ],
        },
        headers=auth_headers(admin_user),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["template"]


@pytest_asyncio.fixture
async def survey_task(client: AsyncClient, admin_user, employee_user, auth_headers) -> str:
    resp = await client.post(
        "/api/tasks",
        json={"title": "Survey", "assigned_to": employee_user.user_id},
        headers=auth_headers(admin_user),
    )
    return resp.json()["data"]["task"]["task_id"]


class TestFormRoutes:
    async def test_list_templates(self, client: AsyncClient, template, employee_user, auth_headers):
        resp = await client.get("/api/forms/templates", headers=auth_headers(employee_user))
        templates = resp.json()["data"]["templates"]
        assert [t["template_id"] for t in templates] == [template["template_id"]]

    async def test_duplicate_field_keys(self, client: AsyncClient, admin_user, auth_headers):
        resp = await client.post(
            "/api/forms/templates",
            json={
                "name": "Broken",
                "fields": [{"key": "a", "label": "A"}, {"key": "a", "label": "A again"}],
            },
            headers=auth_headers(admin_user),
        )
        assert resp.status_code == 400

    async def test_employee_cannot_create_template(
        self, client: AsyncClient, employee_user, auth_headers
    ):
        resp = await client.post(
            "/api/forms/templates",
            json={"name": "Mine", "fields": []},
            headers=auth_headers(employee_user),
        )
        assert resp.status_code == 403

    async def test_submit_then_replace(
        self, client: AsyncClient, template, survey_task, employee_user, auth_headers
    ):
        headers = auth_headers(employee_user)
        url = f"/api/forms/responses/{survey_task}/{template['template_id']}"

        resp = await client.get(url, headers=headers)
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "RESPONSE_NOT_FOUND"

        resp = await client.put(url, json={"answers": {"signal": 3}}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["replaced"] is False

        resp = await client.put(
            url, json={"answers": {"signal": 4, "notes": "Moved antenna"}}, headers=headers
        )
        assert resp.json()["data"]["replaced"] is True

        resp = await client.get(url, headers=headers)
        response = resp.json()["data"]["response"]
        assert response["answers"] == {"signal": 4, "notes": "Moved antenna"}
        assert response["submitted_by"] == employee_user.user_id

        events = await client.get(f"/api/tasks/{survey_task}/events", headers=headers)
        submitted = [e for e in events.json()["data"]["events"] if e["type"] == "FORM_SUBMITTED"]
        assert [e["payload"]["replaced"] for e in submitted] == [False, True]

    async def test_missing_required_field(
        self, client: AsyncClient, template, survey_task, employee_user, auth_headers
    ):
        resp = await client.put(
            f"/api/forms/responses/{survey_task}/{template['template_id']}",
            json={"answers": {"notes": "no signal value"}},
            headers=auth_headers(employee_user),
        )
        assert resp.status_code == 400
        assert "signal" in resp.json()["error"]["message"]

    async def test_unknown_template(
        self, client: AsyncClient, survey_task, employee_user, auth_headers
    ):
        resp = await client.put(
            f"/api/forms/responses/{survey_task}/missing",
            json={"answers": {}},
            headers=auth_headers(employee_user),
        )
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "TEMPLATE_NOT_FOUND"

    async def test_other_employee_cannot_submit(
        self, client: AsyncClient, template, survey_task, make_user, auth_headers
    ):
        other = await make_user("other@example.com")
        resp = await client.put(
            f"/api/forms/responses/{survey_task}/{template['template_id']}",
            json={"answers": {"signal": 1}},
            headers=auth_headers(other),
        )
        assert resp.status_code == 403
