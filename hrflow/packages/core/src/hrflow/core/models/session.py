"""Session Domain Model -- 调用方的认证状态

refresh token 只存在于传输层 cookie 中，不进入应用内存。
"""

from pydantic import BaseModel, Field

from .enums import UserRole


class UserProfile(BaseModel):
    """登录用户信息"""

    id: str = Field(description="用户 ID")
    email: str = Field(description="邮箱")
    name: str = Field(default="", description="姓名")
    role: UserRole = Field(default=UserRole.EMPLOYEE, description="角色")
    phone: str | None = Field(default=None)
    company_id: str | None = Field(default=None)
    permissions: list[str] = Field(default_factory=list)


class Session(BaseModel):
    """认证会话

    is_authenticated 为派生值：access_token 与 user 同时存在时为 True。
    """

    access_token: str | None = Field(default=None, description="短期 access token")
    user: UserProfile | None = Field(default=None, description="当前用户")

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token) and self.user is not None
