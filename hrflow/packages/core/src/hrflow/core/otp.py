"""OTP challenge -- 完成任务前的客户一次性验证码

明文验证码只存在于签发与投递路径中；持久化的是
sha256(task_id:code) 摘要。错误验证码只累加 attempts，
challenge 保持有效直到过期或次数耗尽。
"""

import hashlib
import hmac
import secrets
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, Field

from .models.settings import OtpPolicy


class OtpError(Exception):
    """OTP 错误基类"""

    code: str = "OTP_ERROR"


class OtpNotRequestedError(OtpError):
    """任务没有有效的 OTP challenge"""

    code = "OTP_NOT_REQUESTED"


class OtpMismatchError(OtpError):
    """验证码不匹配"""

    code = "OTP_INVALID"

    def __init__(self, challenge: "OtpChallenge") -> None:
        self.challenge = challenge
        self.attempts = challenge.attempts
        self.max_attempts = challenge.max_attempts
        remaining = max(self.max_attempts - self.attempts, 0)
        super().__init__(f"Invalid OTP, {remaining} attempt(s) remaining")


class OtpExpiredError(OtpError):
    """challenge 已过期"""

    code = "OTP_EXPIRED"


class OtpAttemptsExceededError(OtpError):
    """校验次数已耗尽"""

    code = "OTP_ATTEMPTS_EXCEEDED"


class OtpChallenge(BaseModel):
    """OTP challenge 数据模型"""

    task_id: str
    code_hash: str = Field(description="sha256(task_id:code)")
    issued_at: datetime
    expires_at: datetime
    attempts: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=5, ge=1)

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.now(UTC)) >= self.expires_at

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts


def hash_code(task_id: str, code: str) -> str:
    """计算验证码摘要（以 task_id 加盐）"""
    return hashlib.sha256(f"{task_id}:{code}".encode()).hexdigest()


def generate_code(length: int) -> str:
    """生成指定位数的数字验证码"""
    return "".join(secrets.choice("0123456789") for _ in range(length))


def issue_challenge(
    task_id: str,
    policy: OtpPolicy,
    *,
    now: datetime | None = None,
) -> tuple[OtpChallenge, str]:
    """签发新 challenge

    Returns:
        (challenge, 明文验证码)；明文只交给投递通道，不得落盘或写日志
    """
    now = now or datetime.now(UTC)
    code = generate_code(policy.length)
    challenge = OtpChallenge(
        task_id=task_id,
        code_hash=hash_code(task_id, code),
        issued_at=now,
        expires_at=now + timedelta(seconds=policy.ttl_s),
        max_attempts=policy.max_attempts,
    )
    return challenge, code


def verify_challenge(
    challenge: OtpChallenge | None,
    code: str,
    *,
    now: datetime | None = None,
) -> OtpChallenge:
    """校验验证码

    Args:
        challenge: 当前 challenge（None 表示未请求）
        code: 用户输入的验证码
        now: 校验时间

    Returns:
        更新了 attempts 的 challenge（校验成功时调用方应将其删除）

    Raises:
        OtpNotRequestedError: 没有 challenge
        OtpExpiredError: 已过期
        OtpAttemptsExceededError: 次数已耗尽
        OtpMismatchError: 验证码错误（异常前 attempts 已累加，
            调用方需持久化 exc 上的 challenge）
    """
    if challenge is None:
        raise OtpNotRequestedError("No OTP has been generated for this task")
    if challenge.is_expired(now):
        raise OtpExpiredError("OTP has expired, please generate a new one")
    if challenge.exhausted:
        raise OtpAttemptsExceededError("Too many invalid attempts, please generate a new OTP")

    updated = challenge.model_copy(update={"attempts": challenge.attempts + 1})
    if not hmac.compare_digest(updated.code_hash, hash_code(challenge.task_id, code.strip())):
        raise OtpMismatchError(updated)
    return updated
