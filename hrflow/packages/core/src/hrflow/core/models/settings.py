"""TaskSettings -- 任务流程开关与 OTP 策略

三个布尔开关决定状态机的分支：
- auto_approve: 新指派/重开的任务免审批
- require_approval_on_complete: 完成需管理员签核
- enable_otp_verification: 完成前需客户 OTP 确认
"""

from pydantic import BaseModel, Field

from ..config import get_otp_length, get_otp_max_attempts, get_otp_ttl_s


class OtpPolicy(BaseModel):
    """OTP 策略"""

    length: int = Field(default_factory=get_otp_length, ge=4, le=10, description="OTP 位数")
    ttl_s: int = Field(default_factory=get_otp_ttl_s, ge=30, description="有效期（秒）")
    max_attempts: int = Field(
        default_factory=get_otp_max_attempts,
        ge=1,
        description="同一 challenge 最多校验次数，超出后需重新生成",
    )


class TaskSettings(BaseModel):
    """任务设置（全公司单份）"""

    auto_approve: bool = Field(default=False, description="免初次审批")
    require_approval_on_complete: bool = Field(default=False, description="完成需管理员审批")
    enable_otp_verification: bool = Field(default=False, description="完成前需 OTP 校验")
    otp: OtpPolicy = Field(default_factory=OtpPolicy, description="OTP 策略")
