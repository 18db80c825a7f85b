"""OtpDispatcher -- OTP 带外投递通道

验证码只通过投递通道离开网关，不写入日志、事件或响应体。
- LoggingOtpDispatcher: 只记录投递动作（开发环境，无真实通道）
- OutboxOtpDispatcher: 进程内发件箱，供联调/测试读取已投递的验证码
"""

import os
from typing import Protocol

import structlog
from hrflow.core.models import Task

log = structlog.get_logger()


class OtpDispatcher(Protocol):
    async def dispatch(self, task: Task, code: str) -> None: ...


class LoggingOtpDispatcher:
    """仅记录投递事件（不含验证码）"""

    async def dispatch(self, task: Task, code: str) -> None:
        log.info(
            "otp_dispatched",
            task_id=task.task_id,
            customer_id=task.customer_id,
            code_length=len(code),
        )


class OutboxOtpDispatcher:
    """进程内发件箱"""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def dispatch(self, task: Task, code: str) -> None:
        self.sent.append((task.task_id, code))
        log.info("otp_queued_to_outbox", task_id=task.task_id)

    def last_code(self, task_id: str) -> str | None:
        """该任务最近一次投递的验证码"""
        for sent_task_id, code in reversed(self.sent):
            if sent_task_id == task_id:
                return code
        return None


def create_otp_dispatcher() -> OtpDispatcher:
    """按 HRFLOW_OTP_DISPATCHER 选择投递通道（log / outbox，默认 log）"""
    kind = os.environ.get("HRFLOW_OTP_DISPATCHER", "log").lower()
    if kind == "outbox":
        return OutboxOtpDispatcher()
    if kind != "log":
        log.warning("unknown_otp_dispatcher", value=kind, fallback="log")
    return LoggingOtpDispatcher()
