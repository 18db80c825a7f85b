"""Domain Models 单元测试

测试内容：
1. Task 不变式：pending_completion 只能与 PENDING 共存
2. customFields 中旧状态键的提升
3. 枚举 wire 值与角色属性
4. Session 派生字段
"""

from datetime import UTC, datetime

import pytest
from hrflow.core.models import (
    Session,
    Task,
    TaskSettings,
    TaskStatus,
    UserProfile,
    UserRole,
)
from pydantic import ValidationError


class TestTaskModel:
    def test_pending_completion_requires_pending_status(self, task_factory):
        with pytest.raises(ValidationError):
            task_factory(status=TaskStatus.IN_PROGRESS, pending_completion=True)

    def test_awaiting_initial_approval(self, task_factory):
        assert task_factory(status=TaskStatus.PENDING).awaiting_initial_approval
        assert task_factory(status=TaskStatus.REOPENED).awaiting_initial_approval
        completion_gate = task_factory(status=TaskStatus.PENDING, pending_completion=True)
        assert not completion_gate.awaiting_initial_approval

    def test_legacy_custom_fields_are_promoted(self):
        now = datetime.now(UTC).isoformat()
        task = Task.model_validate(
            {
                "task_id": "01JTASK0000000000000000002",
                "title": "Survey",
                "assigned_to": "emp-1",
                "assigned_date": now,
                "status": "Pending",
                "customFields": {
                    "pendingCompletion": True,
                    "reopenReason": "redo",
                    "siteCode": "A-12",
                },
                "created_at": now,
                "updated_at": now,
            }
        )
        assert task.pending_completion is True
        assert task.reopen_reason == "redo"
        assert task.custom_fields == {"siteCode": "A-12"}

    def test_json_round_trip_keeps_status_wire_value(self, task_factory):
        task = task_factory(status=TaskStatus.DELAYED)
        data = task.model_dump(mode="json")
        assert data["status"] == "Delayed Tasks"
        assert Task.model_validate(data) == task


class TestEnumsAndSettings:
    def test_only_admin_role_is_admin(self):
        assert UserRole.ADMIN.is_admin
        assert not any(r.is_admin for r in UserRole if r is not UserRole.ADMIN)

    def test_settings_defaults(self):
        settings = TaskSettings()
        assert not settings.auto_approve
        assert not settings.require_approval_on_complete
        assert not settings.enable_otp_verification
        assert settings.otp.ttl_s == 600
        assert settings.otp.max_attempts == 5

    def test_otp_policy_reads_environment(self, monkeypatch):
        monkeypatch.setenv("HRFLOW_OTP_TTL_S", "120")
        monkeypatch.setenv("HRFLOW_OTP_MAX_ATTEMPTS", "not-a-number")
        settings = TaskSettings()
        assert settings.otp.ttl_s == 120
        assert settings.otp.max_attempts == 5


class TestSession:
    def test_authenticated_requires_token_and_user(self):
        user = UserProfile(id="u1", email="a@example.com")
        assert Session(access_token="tok", user=user).is_authenticated
        assert not Session(access_token="tok").is_authenticated
        assert not Session(access_token="", user=user).is_authenticated
