"""UserStore SQLite 实现 -- 账号与 refresh token

账号与 refresh token 不属于任务事件流，写操作自行提交。
refresh token 只存摘要，明文只出现在 cookie 中。
"""

from datetime import datetime

import aiosqlite
from pydantic import BaseModel, Field

from ..models.enums import UserRole
from ..models.session import UserProfile


class UserExistsError(Exception):
    """邮箱已被注册"""


class StoredUser(BaseModel):
    """users 表记录（含密码摘要，不出网关）"""

    user_id: str
    email: str
    name: str = ""
    role: UserRole = UserRole.EMPLOYEE
    password_hash: str
    phone: str | None = None
    company_id: str | None = None
    is_active: bool = True
    created_at: datetime

    def to_profile(self) -> UserProfile:
        return UserProfile(
            id=self.user_id,
            email=self.email,
            name=self.name,
            role=self.role,
            phone=self.phone,
            company_id=self.company_id,
        )


class RefreshTokenRecord(BaseModel):
    token_hash: str
    user_id: str
    issued_at: datetime
    expires_at: datetime
    revoked_at: datetime | None = None

    @property
    def revoked(self) -> bool:
        return self.revoked_at is not None


class SqliteUserStore:
    """UserStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_user(self, user: StoredUser) -> None:
        """创建账号

        Raises:
            UserExistsError: 邮箱已存在（大小写不敏感）
        """
        try:
            await self._conn.execute(
                """
                INSERT INTO users (user_id, email, name, role, password_hash,
                                   phone, company_id, is_active, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user.user_id,
                    user.email,
                    user.name,
                    user.role.value,
                    user.password_hash,
                    user.phone,
                    user.company_id,
                    int(user.is_active),
                    user.created_at.isoformat(),
                ),
            )
            await self._conn.commit()
        except aiosqlite.IntegrityError as exc:
            await self._conn.rollback()
            raise UserExistsError(f"User {user.email} already exists") from exc

    async def get_user(self, user_id: str) -> StoredUser | None:
        cursor = await self._conn.execute(
            "SELECT * FROM users WHERE user_id = ?",
            (user_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_user(row) if row is not None else None

    async def get_user_by_email(self, email: str) -> StoredUser | None:
        cursor = await self._conn.execute(
            "SELECT * FROM users WHERE email = ?",
            (email.strip(),),
        )
        row = await cursor.fetchone()
        return self._row_to_user(row) if row is not None else None

    async def set_active(self, user_id: str, is_active: bool) -> None:
        await self._conn.execute(
            "UPDATE users SET is_active = ? WHERE user_id = ?",
            (int(is_active), user_id),
        )
        await self._conn.commit()

    async def save_refresh_token(self, record: RefreshTokenRecord) -> None:
        await self._conn.execute(
            """
            INSERT INTO refresh_tokens (token_hash, user_id, issued_at, expires_at, revoked_at)
            VALUES (?, ?, ?, ?, NULL)
            """,
            (
                record.token_hash,
                record.user_id,
                record.issued_at.isoformat(),
                record.expires_at.isoformat(),
            ),
        )
        await self._conn.commit()

    async def get_refresh_token(self, token_hash: str) -> RefreshTokenRecord | None:
        cursor = await self._conn.execute(
            "SELECT * FROM refresh_tokens WHERE token_hash = ?",
            (token_hash,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return RefreshTokenRecord(
            token_hash=row["token_hash"],
            user_id=row["user_id"],
            issued_at=datetime.fromisoformat(row["issued_at"]),
            expires_at=datetime.fromisoformat(row["expires_at"]),
            revoked_at=datetime.fromisoformat(row["revoked_at"]) if row["revoked_at"] else None,
        )

    async def revoke_refresh_token(self, token_hash: str, revoked_at: datetime) -> None:
        await self._conn.execute(
            "UPDATE refresh_tokens SET revoked_at = ? WHERE token_hash = ? AND revoked_at IS NULL",
            (revoked_at.isoformat(), token_hash),
        )
        await self._conn.commit()

    @staticmethod
    def _row_to_user(row: aiosqlite.Row) -> StoredUser:
        return StoredUser(
            user_id=row["user_id"],
            email=row["email"],
            name=row["name"],
            role=UserRole(row["role"]),
            password_hash=row["password_hash"],
            phone=row["phone"],
            company_id=row["company_id"],
            is_active=bool(row["is_active"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )
