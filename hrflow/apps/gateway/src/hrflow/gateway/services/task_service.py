"""TaskService -- 任务指派 / 状态流转 / OTP / 表单业务逻辑

状态流转流程：
1. 获取 task 级别锁，序列化同一任务的操作
2. 读取最新任务与设置，做权限与生命周期校验
3. 同一事务内写入 STATE_TRANSITION 事件并按 version 更新 projection

同一任务的重复并发操作在锁内基于更新后的状态重新校验，会被拒绝。
"""

import asyncio
from datetime import UTC, datetime
from typing import Any

import structlog
from hrflow.core.config import TASK_TITLE_MAX_LENGTH
from hrflow.core.lifecycle import (
    TransitionRefusedError,
    TransitionResult,
    action_for_status,
    apply_action,
    can_perform,
)
from hrflow.core.models import (
    TERMINAL_STATES,
    ActorType,
    Event,
    EventType,
    FormResponse,
    FormSubmittedPayload,
    OtpRequestedPayload,
    OtpVerificationPayload,
    StateTransitionPayload,
    Task,
    TaskAction,
    TaskAssignedPayload,
    TaskCreate,
    TaskSettings,
    TaskStats,
    TaskStatus,
    UserRole,
)
from hrflow.core.otp import OtpMismatchError, issue_challenge, verify_challenge
from hrflow.core.store import StoredUser, StoreGroup, TaskVersionConflictError
from hrflow.core.store.transaction import (
    append_event_and_create_task,
    append_event_and_update_task,
    append_event_only,
)
from ulid import ULID

from ..errors import GatewayError, forbidden, task_not_found
from .otp_dispatcher import LoggingOtpDispatcher, OtpDispatcher

log = structlog.get_logger()

# 需要审批人角色（非 employee）的动作
_REVIEWER_ACTIONS = frozenset({TaskAction.APPROVE, TaskAction.REJECT, TaskAction.MARK_DELAYED})

# 执行人动作：employee 只能操作指派给自己的任务
_ASSIGNEE_ACTIONS = frozenset(
    {TaskAction.START, TaskAction.HOLD, TaskAction.RESUME, TaskAction.COMPLETE}
)


class TaskService:
    """任务业务服务"""

    _task_locks: dict[str, asyncio.Lock] = {}
    _task_locks_guard = asyncio.Lock()

    def __init__(
        self,
        store_group: StoreGroup,
        otp_dispatcher: OtpDispatcher | None = None,
    ) -> None:
        self._stores = store_group
        self._otp_dispatcher = otp_dispatcher or LoggingOtpDispatcher()

    # ---- 查询 ----

    @staticmethod
    def _can_view(task: Task, actor: StoredUser) -> bool:
        return actor.role is not UserRole.EMPLOYEE or task.assigned_to == actor.user_id

    async def get_task(self, task_id: str, actor: StoredUser) -> Task:
        """查询任务详情

        Raises:
            GatewayError: 任务不存在（404）或无权查看（403）
        """
        task = await self._stores.task_store.get_task(task_id)
        if task is None:
            raise task_not_found(task_id)
        if not self._can_view(task, actor):
            raise forbidden()
        return task

    async def list_tasks(
        self,
        actor: StoredUser,
        status: TaskStatus | None = None,
        assigned_to: str | None = None,
    ) -> list[Task]:
        """查询任务列表；employee 只能看到自己的任务"""
        if actor.role is UserRole.EMPLOYEE:
            assigned_to = actor.user_id
        return await self._stores.task_store.list_tasks(status=status, assigned_to=assigned_to)

    async def get_stats(self, actor: StoredUser) -> TaskStats:
        assigned_to = actor.user_id if actor.role is UserRole.EMPLOYEE else None
        return await self._stores.task_store.get_stats(assigned_to=assigned_to)

    async def get_events(self, task_id: str, actor: StoredUser) -> list[Event]:
        await self.get_task(task_id, actor)
        return await self._stores.event_store.get_events_for_task(task_id)

    async def get_settings(self) -> TaskSettings:
        return await self._stores.settings_store.get_settings()

    # ---- 指派 ----

    async def create_task(self, draft: TaskCreate, actor: StoredUser) -> Task:
        """指派任务

        auto_approve 开启时直接进入 NOT_YET_STARTED，否则进入 PENDING 等待审批。
        """
        if actor.role is UserRole.EMPLOYEE:
            raise forbidden("Only staff can assign tasks")
        assignee = await self._stores.user_store.get_user(draft.assigned_to)
        if assignee is None:
            raise GatewayError(400, "VALIDATION_ERROR", "Assigned user does not exist")

        settings = await self.get_settings()
        now = datetime.now(UTC)
        task_id = str(ULID())
        task = Task(
            task_id=task_id,
            title=draft.title[:TASK_TITLE_MAX_LENGTH],
            description=draft.description,
            customer_id=draft.customer_id,
            assigned_to=draft.assigned_to,
            assigned_by=actor.user_id,
            assigned_date=now,
            expected_completion_date=draft.expected_completion_date,
            earliest_completion_date=draft.earliest_completion_date,
            latest_completion_date=draft.latest_completion_date,
            status=TaskStatus.NOT_YET_STARTED if settings.auto_approve else TaskStatus.PENDING,
            custom_fields=draft.custom_fields,
            created_at=now,
            updated_at=now,
        )
        event = Event(
            event_id=str(ULID()),
            task_id=task_id,
            task_seq=1,
            ts=now,
            type=EventType.TASK_ASSIGNED,
            actor=ActorType.ADMIN,
            actor_id=actor.user_id,
            payload=TaskAssignedPayload(task=task.model_dump(mode="json")).model_dump(mode="json"),
            trace_id=f"trace-{task_id}",
        )
        async with self._stores.write_lock:
            await append_event_and_create_task(
                self._stores.conn,
                self._stores.event_store,
                self._stores.task_store,
                event,
                task,
            )
        log.info(
            "task_assigned",
            task_id=task_id,
            assigned_to=task.assigned_to,
            status=task.status.value,
        )
        return task

    # ---- 状态流转 ----

    def _authorize(self, task: Task, action: TaskAction, actor: StoredUser) -> None:
        if not self._can_view(task, actor):
            raise forbidden()
        if actor.role.is_admin:
            return
        if action in _REVIEWER_ACTIONS and actor.role is UserRole.EMPLOYEE:
            raise forbidden()
        if action in _ASSIGNEE_ACTIONS and task.assigned_to != actor.user_id:
            raise forbidden("Only the assignee can perform this action")
        # 管理员专属动作由生命周期守卫拒绝，这里先给出权限错误
        if action in (
            TaskAction.APPROVE_COMPLETION,
            TaskAction.REJECT_COMPLETION,
            TaskAction.REOPEN,
        ):
            raise forbidden("Admin role required")

    @staticmethod
    def _actor_type(task: Task, actor: StoredUser) -> ActorType:
        if actor.user_id == task.assigned_to and not actor.role.is_admin:
            return ActorType.ASSIGNEE
        return ActorType.ADMIN

    def _transition_event(
        self,
        result: TransitionResult,
        actor: StoredUser,
        task_seq: int,
        reason: str,
    ) -> Event:
        task = result.task
        payload = StateTransitionPayload(
            action=result.action,
            from_status=result.from_status,
            to_status=result.to_status,
            pending_completion=task.pending_completion,
            reason=reason,
            completed_date=task.completed_date.isoformat() if task.completed_date else None,
            version=task.version,
        )
        return Event(
            event_id=str(ULID()),
            task_id=task.task_id,
            task_seq=task_seq,
            ts=task.updated_at,
            type=EventType.STATE_TRANSITION,
            actor=self._actor_type(task, actor),
            actor_id=actor.user_id,
            payload=payload.model_dump(mode="json"),
            trace_id=f"trace-{task.task_id}",
        )

    async def transition(
        self,
        task_id: str,
        actor: StoredUser,
        action: TaskAction | None = None,
        *,
        target_status: TaskStatus | None = None,
        reason: str | None = None,
        expected_version: int | None = None,
    ) -> TransitionResult:
        """执行状态流转

        Args:
            task_id: 任务 ID
            actor: 操作者
            action: 动作；为 None 时按 target_status 反查
            target_status: 目标状态（兼容旧接口）
            reason: 驳回/重开原因
            expected_version: 调用方看到的任务版本

        Raises:
            GatewayError: 任务不存在 / 无权限
            TransitionRefusedError: 守卫不满足
            OtpRequiredError: 启用 OTP 时直接 complete
            TaskVersionConflictError: 版本不一致
        """
        lock = await self._get_task_lock(task_id)
        async with lock:
            task = await self._stores.task_store.get_task(task_id)
            if task is None:
                raise task_not_found(task_id)
            settings = await self.get_settings()
            if action is None:
                if target_status is None:
                    raise GatewayError(400, "VALIDATION_ERROR", "Either action or status is required")
                action = action_for_status(task, target_status, settings, actor.role)
                if action is None:
                    if not self._can_view(task, actor):
                        raise forbidden()
                    raise GatewayError(
                        409,
                        "TRANSITION_REFUSED",
                        f"Cannot move task from '{task.status.value}' to '{target_status.value}'",
                    )
            self._authorize(task, action, actor)
            if expected_version is not None and expected_version != task.version:
                raise TaskVersionConflictError(task_id, expected_version)

            result = apply_action(task, action, settings, actor.role, reason=reason)
            await self._persist_transition(task, result, actor, reason or "")

        await self._after_transition(result, actor)
        return result

    async def _persist_transition(
        self,
        before: Task,
        result: TransitionResult,
        actor: StoredUser,
        reason: str,
        *,
        otp_attempts: int | None = None,
    ) -> None:
        """写入流转事件并更新投影

        otp_attempts 非 None 时，同一事务内先删除 challenge 并写入 OTP_VERIFIED。
        """
        task_id = before.task_id
        async with self._stores.write_lock:
            seq = await self._stores.event_store.get_next_task_seq(task_id)
            if otp_attempts is not None:
                verified = Event(
                    event_id=str(ULID()),
                    task_id=task_id,
                    task_seq=seq,
                    ts=result.task.updated_at,
                    type=EventType.OTP_VERIFIED,
                    actor=self._actor_type(before, actor),
                    actor_id=actor.user_id,
                    payload=OtpVerificationPayload(attempts=otp_attempts).model_dump(mode="json"),
                    trace_id=f"trace-{task_id}",
                )
                try:
                    await self._stores.otp_store.delete_challenge(task_id)
                    await self._stores.event_store.append_event(verified)
                except Exception:
                    await self._stores.conn.rollback()
                    raise
                seq += 1
            event = self._transition_event(result, actor, seq, reason)
            await append_event_and_update_task(
                self._stores.conn,
                self._stores.event_store,
                self._stores.task_store,
                event,
                result.task,
                before.version,
            )

    async def _after_transition(self, result: TransitionResult, actor: StoredUser) -> None:
        log.info(
            "task_transition_applied",
            task_id=result.task.task_id,
            action=result.action.value,
            from_status=result.from_status.value,
            to_status=result.to_status.value,
            version=result.task.version,
            actor_id=actor.user_id,
        )
        if result.to_status in TERMINAL_STATES:
            await self._cleanup_task_lock(result.task.task_id)

    # ---- OTP ----

    async def generate_otp(self, task_id: str, actor: StoredUser) -> datetime:
        """签发 OTP 并投递（任务状态不变）

        Returns:
            challenge 过期时间
        """
        lock = await self._get_task_lock(task_id)
        async with lock:
            task = await self._stores.task_store.get_task(task_id)
            if task is None:
                raise task_not_found(task_id)
            self._authorize(task, TaskAction.COMPLETE, actor)
            settings = await self.get_settings()
            if not settings.enable_otp_verification:
                raise GatewayError(400, "OTP_DISABLED", "OTP verification is not enabled")
            if not can_perform(task, TaskAction.COMPLETE, settings, actor.role):
                raise TransitionRefusedError(task, TaskAction.COMPLETE)

            challenge, code = issue_challenge(task_id, settings.otp)
            async with self._stores.write_lock:
                seq = await self._stores.event_store.get_next_task_seq(task_id)
                event = Event(
                    event_id=str(ULID()),
                    task_id=task_id,
                    task_seq=seq,
                    ts=challenge.issued_at,
                    type=EventType.OTP_REQUESTED,
                    actor=self._actor_type(task, actor),
                    actor_id=actor.user_id,
                    payload=OtpRequestedPayload(
                        expires_at=challenge.expires_at.isoformat(),
                    ).model_dump(mode="json"),
                    trace_id=f"trace-{task_id}",
                )
                try:
                    await self._stores.otp_store.put_challenge(challenge)
                except Exception:
                    await self._stores.conn.rollback()
                    raise
                await append_event_only(self._stores.conn, self._stores.event_store, event)

        await self._otp_dispatcher.dispatch(task, code)
        log.info("otp_issued", task_id=task_id, expires_at=challenge.expires_at.isoformat())
        return challenge.expires_at

    async def verify_otp(self, task_id: str, code: str, actor: StoredUser) -> TransitionResult:
        """校验 OTP，成功后执行 complete

        错误验证码只累加 attempts 并保留 challenge，任务不变。

        Raises:
            GatewayError: 验证码为空或 OTP 未启用（400）
            OtpMismatchError / OtpExpiredError / OtpAttemptsExceededError / OtpNotRequestedError
        """
        code = (code or "").strip()
        if not code:
            raise GatewayError(400, "OTP_REQUIRED", "OTP is required")

        lock = await self._get_task_lock(task_id)
        async with lock:
            task = await self._stores.task_store.get_task(task_id)
            if task is None:
                raise task_not_found(task_id)
            self._authorize(task, TaskAction.COMPLETE, actor)
            settings = await self.get_settings()
            if not settings.enable_otp_verification:
                raise GatewayError(400, "OTP_DISABLED", "OTP verification is not enabled")
            if not can_perform(task, TaskAction.COMPLETE, settings, actor.role):
                raise TransitionRefusedError(task, TaskAction.COMPLETE)

            challenge = await self._stores.otp_store.get_challenge(task_id)
            try:
                verified = verify_challenge(challenge, code)
            except OtpMismatchError as e:
                await self._record_otp_rejection(task, actor, e)
                raise

            result = apply_action(
                task,
                TaskAction.COMPLETE,
                settings,
                actor.role,
                otp_verified=True,
            )
            await self._persist_transition(
                task, result, actor, "", otp_attempts=verified.attempts
            )

        log.info("otp_verified", task_id=task_id, attempts=verified.attempts)
        await self._after_transition(result, actor)
        return result

    async def _record_otp_rejection(
        self,
        task: Task,
        actor: StoredUser,
        error: OtpMismatchError,
    ) -> None:
        async with self._stores.write_lock:
            seq = await self._stores.event_store.get_next_task_seq(task.task_id)
            event = Event(
                event_id=str(ULID()),
                task_id=task.task_id,
                task_seq=seq,
                ts=datetime.now(UTC),
                type=EventType.OTP_REJECTED,
                actor=self._actor_type(task, actor),
                actor_id=actor.user_id,
                payload=OtpVerificationPayload(
                    attempts=error.attempts,
                    reason="mismatch",
                ).model_dump(mode="json"),
                trace_id=f"trace-{task.task_id}",
            )
            try:
                await self._stores.otp_store.put_challenge(error.challenge)
            except Exception:
                await self._stores.conn.rollback()
                raise
            await append_event_only(self._stores.conn, self._stores.event_store, event)
        log.info(
            "otp_rejected",
            task_id=task.task_id,
            attempts=error.attempts,
            max_attempts=error.max_attempts,
        )

    # ---- 表单 ----

    async def submit_form_response(
        self,
        task_id: str,
        template_id: str,
        answers: dict[str, Any],
        actor: StoredUser,
    ) -> tuple[FormResponse, bool]:
        """提交（或覆盖）问卷回答

        Returns:
            (response, replaced)
        """
        task = await self.get_task(task_id, actor)
        template = await self._stores.form_store.get_template(template_id)
        if template is None:
            raise GatewayError(404, "TEMPLATE_NOT_FOUND", f"Form template {template_id} does not exist")
        missing = [
            f.key
            for f in template.fields
            if f.required and answers.get(f.key) in (None, "", [])
        ]
        if missing:
            raise GatewayError(
                400, "VALIDATION_ERROR", f"Missing required fields: {', '.join(missing)}"
            )

        now = datetime.now(UTC)
        response = FormResponse(
            task_id=task_id,
            template_id=template_id,
            submitted_by=actor.user_id,
            answers=answers,
            submitted_at=now,
        )
        lock = await self._get_task_lock(task_id)
        async with lock, self._stores.write_lock:
            existing = await self._stores.form_store.get_response(task_id, template_id)
            seq = await self._stores.event_store.get_next_task_seq(task_id)
            event = Event(
                event_id=str(ULID()),
                task_id=task_id,
                task_seq=seq,
                ts=now,
                type=EventType.FORM_SUBMITTED,
                actor=self._actor_type(task, actor),
                actor_id=actor.user_id,
                payload=FormSubmittedPayload(
                    template_id=template_id,
                    answer_count=len(answers),
                    replaced=existing is not None,
                ).model_dump(mode="json"),
                trace_id=f"trace-{task_id}",
            )
            try:
                await self._stores.form_store.put_response(response)
            except Exception:
                await self._stores.conn.rollback()
                raise
            await append_event_only(self._stores.conn, self._stores.event_store, event)
        log.info(
            "form_response_submitted",
            task_id=task_id,
            template_id=template_id,
            replaced=existing is not None,
        )
        return response, existing is not None

    # ---- 锁 ----

    @classmethod
    async def _get_task_lock(cls, task_id: str) -> asyncio.Lock:
        """获取 task 级别锁，序列化同一任务的操作。"""
        async with cls._task_locks_guard:
            lock = cls._task_locks.get(task_id)
            if lock is None:
                lock = asyncio.Lock()
                cls._task_locks[task_id] = lock
            return lock

    @classmethod
    async def _cleanup_task_lock(cls, task_id: str) -> None:
        """任务终态后清理 lock，避免全局字典无限增长。"""
        async with cls._task_locks_guard:
            lock = cls._task_locks.get(task_id)
            if lock is not None and not lock.locked():
                cls._task_locks.pop(task_id, None)
