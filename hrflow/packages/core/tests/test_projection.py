"""Projection 重建测试

测试内容：
1. TASK_ASSIGNED 快照创建任务
2. STATE_TRANSITION 应用状态差量与原因
3. 全量重建与流转后的投影一致
4. CLI：rebuild-projections / create-user
"""

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from hrflow.core.__main__ import main
from hrflow.core.models import (
    ActorType,
    Event,
    EventType,
    OtpRequestedPayload,
    StateTransitionPayload,
    TaskAction,
    TaskAssignedPayload,
    TaskStatus,
)
from hrflow.core.projection import apply_event, rebuild_all
from hrflow.core.store import (
    StoreGroup,
    append_event_and_create_task,
    append_event_and_update_task,
    append_event_only,
    create_store_group,
)

T0 = datetime(2026, 1, 1, tzinfo=UTC)


def _assigned(task) -> Event:
    return Event(
        event_id="01JEVT00000000000000000001",
        task_id=task.task_id,
        task_seq=1,
        ts=task.created_at,
        type=EventType.TASK_ASSIGNED,
        actor=ActorType.ADMIN,
        payload=TaskAssignedPayload(task=task.model_dump(mode="json")).model_dump(mode="json"),
        trace_id=f"trace-{task.task_id}",
    )


def _transition(task_id: str, seq: int, payload: StateTransitionPayload) -> Event:
    return Event(
        event_id=f"01JEVT{seq:020d}",
        task_id=task_id,
        task_seq=seq,
        ts=T0 + timedelta(minutes=seq),
        type=EventType.STATE_TRANSITION,
        actor=ActorType.ADMIN,
        payload=payload.model_dump(mode="json"),
        trace_id=f"trace-{task_id}",
    )


class TestApplyEvent:
    def test_assigned_snapshot_creates_task(self, task_factory):
        task = task_factory(created_at=T0, updated_at=T0, assigned_date=T0)
        tasks = {}
        apply_event(tasks, _assigned(task))
        assert tasks[task.task_id] == task

    def test_transition_applies_status_version_and_reason(self, task_factory):
        task = task_factory(created_at=T0, updated_at=T0, assigned_date=T0)
        tasks = {}
        apply_event(tasks, _assigned(task))
        event = _transition(
            task.task_id,
            2,
            StateTransitionPayload(
                action=TaskAction.REOPEN,
                from_status=TaskStatus.NOT_YET_STARTED,
                to_status=TaskStatus.REOPENED,
                reason="Customer called back",
                version=2,
            ),
        )
        apply_event(tasks, event)

        rebuilt = tasks[task.task_id]
        assert rebuilt.status is TaskStatus.REOPENED
        assert rebuilt.reopen_reason == "Customer called back"
        assert rebuilt.version == 2
        assert rebuilt.updated_at == event.ts

    def test_orphan_transition_ignored(self):
        tasks = {}
        apply_event(
            tasks,
            _transition(
                "missing",
                2,
                StateTransitionPayload(
                    action=TaskAction.START,
                    from_status=TaskStatus.NOT_YET_STARTED,
                    to_status=TaskStatus.IN_PROGRESS,
                    version=2,
                ),
            ),
        )
        assert tasks == {}


class TestRebuildAll:
    @pytest.fixture
    async def group(self, tmp_db_path: Path):
        sg = await create_store_group(str(tmp_db_path))
        yield sg
        await sg.conn.close()

    async def test_rebuild_matches_live_projection(self, group: StoreGroup, task_factory):
        task = task_factory(created_at=T0, updated_at=T0, assigned_date=T0)
        await append_event_and_create_task(
            group.conn, group.event_store, group.task_store, _assigned(task), task
        )
        started = task.model_copy(
            update={
                "status": TaskStatus.IN_PROGRESS,
                "version": 2,
                "updated_at": T0 + timedelta(minutes=2),
            }
        )
        await append_event_and_update_task(
            group.conn,
            group.event_store,
            group.task_store,
            _transition(
                task.task_id,
                2,
                StateTransitionPayload(
                    action=TaskAction.START,
                    from_status=TaskStatus.NOT_YET_STARTED,
                    to_status=TaskStatus.IN_PROGRESS,
                    version=2,
                ),
            ),
            started,
            expected_version=1,
        )
        await append_event_only(
            group.conn,
            group.event_store,
            Event(
                event_id="01JEVT00000000000000000003",
                task_id=task.task_id,
                task_seq=3,
                ts=T0 + timedelta(minutes=3),
                type=EventType.OTP_REQUESTED,
                actor=ActorType.ASSIGNEE,
                payload=OtpRequestedPayload(expires_at=T0.isoformat()).model_dump(mode="json"),
                trace_id=f"trace-{task.task_id}",
            ),
        )

        live = await group.task_store.get_task(task.task_id)
        count = await rebuild_all(group.conn, group.event_store, group.task_store)
        assert count == 3
        assert await group.task_store.get_task(task.task_id) == live

    async def test_rebuild_empty_database(self, group: StoreGroup):
        assert await rebuild_all(group.conn, group.event_store, group.task_store) == 0


class TestCli:
    def test_create_user_then_duplicate_fails(self, tmp_db_path: Path, monkeypatch, capsys):
        monkeypatch.setenv("HRFLOW_DB_PATH", str(tmp_db_path))
        main(["create-user", "boss@example.com", "s3cret-pass", "--role", "admin"])
        assert "boss@example.com" in capsys.readouterr().out

        with pytest.raises(SystemExit) as exc_info:
            main(["create-user", "BOSS@example.com", "another-pass"])
        assert exc_info.value.code == 1

    def test_rebuild_projections_command(self, tmp_db_path: Path, monkeypatch, capsys):
        monkeypatch.setenv("HRFLOW_DB_PATH", str(tmp_db_path))
        main(["rebuild-projections"])
        assert "0" in capsys.readouterr().out

    def test_no_command_prints_help(self):
        with pytest.raises(SystemExit):
            main([])
