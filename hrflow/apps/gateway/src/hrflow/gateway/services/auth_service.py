"""AuthService -- 注册 / 登录 / 刷新 / 注销

refresh token 明文只经由 cookie 下发；库中保存摘要、过期时间与吊销时间。
"""

from datetime import UTC, datetime, timedelta

import structlog
from hrflow.core.models import UserRole
from hrflow.core.passwords import hash_password, verify_password
from hrflow.core.store import (
    RefreshTokenRecord,
    StoredUser,
    StoreGroup,
    UserExistsError,
)
from ulid import ULID

from ..config import GatewayConfig
from ..errors import GatewayError, unauthorized
from .security import create_access_token, generate_refresh_token, hash_refresh_token

log = structlog.get_logger()

# 自助注册可选的角色（管理员账号只能通过 CLI 创建）
SELF_SERVICE_ROLES = frozenset({UserRole.EMPLOYEE, UserRole.MANAGER, UserRole.HR})

DEACTIVATED_MESSAGE = "Account is deactivated"


class AuthSession:
    """一次认证的产物"""

    def __init__(self, user: StoredUser, access_token: str, refresh_token: str | None) -> None:
        self.user = user
        self.access_token = access_token
        self.refresh_token = refresh_token


class AuthService:
    """认证业务服务"""

    def __init__(self, store_group: StoreGroup, config: GatewayConfig) -> None:
        self._stores = store_group
        self._config = config

    async def create_user(
        self,
        email: str,
        password: str,
        *,
        name: str = "",
        role: UserRole = UserRole.EMPLOYEE,
        phone: str | None = None,
    ) -> StoredUser:
        """创建账号

        Raises:
            GatewayError: 邮箱已注册（409 USER_EXISTS）
        """
        user = StoredUser(
            user_id=str(ULID()),
            email=email.strip(),
            name=name,
            role=role,
            password_hash=hash_password(password),
            phone=phone,
            created_at=datetime.now(UTC),
        )
        try:
            async with self._stores.write_lock:
                await self._stores.user_store.create_user(user)
        except UserExistsError as e:
            raise GatewayError(409, "USER_EXISTS", "An account with this email already exists") from e
        log.info("user_created", user_id=user.user_id, role=user.role.value)
        return user

    async def _issue(self, user: StoredUser) -> AuthSession:
        now = datetime.now(UTC)
        refresh_token = generate_refresh_token()
        record = RefreshTokenRecord(
            token_hash=hash_refresh_token(refresh_token),
            user_id=user.user_id,
            issued_at=now,
            expires_at=now + timedelta(seconds=self._config.refresh_token_ttl_s),
        )
        async with self._stores.write_lock:
            await self._stores.user_store.save_refresh_token(record)
        access_token = create_access_token(self._config, user.user_id, user.role.value, now=now)
        return AuthSession(user, access_token, refresh_token)

    async def register(
        self,
        email: str,
        password: str,
        name: str = "",
        role: UserRole = UserRole.EMPLOYEE,
        phone: str | None = None,
    ) -> AuthSession:
        if role not in SELF_SERVICE_ROLES:
            raise GatewayError(403, "FORBIDDEN", "This role cannot be self-registered")
        user = await self.create_user(email, password, name=name, role=role, phone=phone)
        return await self._issue(user)

    async def login(self, email: str, password: str) -> AuthSession:
        """校验凭证并签发 token

        Raises:
            GatewayError: 凭证错误（401）或账号已停用（403）
        """
        user = await self._stores.user_store.get_user_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            log.info("login_rejected", reason="bad_credentials")
            raise GatewayError(401, "INVALID_CREDENTIALS", "Invalid email or password")
        if not user.is_active:
            log.info("login_rejected", reason="deactivated", user_id=user.user_id)
            raise GatewayError(403, "ACCOUNT_DEACTIVATED", DEACTIVATED_MESSAGE)
        log.info("login_succeeded", user_id=user.user_id)
        return await self._issue(user)

    async def refresh(self, refresh_token: str | None) -> AuthSession:
        """用 refresh token 换取新的 access token

        Raises:
            GatewayError: 401 缺失 / 未知 / 已吊销 / 已过期 / 账号停用
        """
        if not refresh_token:
            raise unauthorized("Refresh token missing")
        record = await self._stores.user_store.get_refresh_token(hash_refresh_token(refresh_token))
        now = datetime.now(UTC)
        if record is None or record.revoked or record.expires_at <= now:
            log.info("token_refresh_rejected", known=record is not None)
            raise unauthorized("Refresh token invalid or expired")
        user = await self._stores.user_store.get_user(record.user_id)
        if user is None or not user.is_active:
            raise unauthorized(DEACTIVATED_MESSAGE)
        access_token = create_access_token(self._config, user.user_id, user.role.value, now=now)
        log.info("token_refreshed", user_id=user.user_id)
        return AuthSession(user, access_token, None)

    async def logout(self, refresh_token: str | None) -> None:
        if not refresh_token:
            return
        async with self._stores.write_lock:
            await self._stores.user_store.revoke_refresh_token(
                hash_refresh_token(refresh_token), datetime.now(UTC)
            )
        log.info("refresh_token_revoked")
