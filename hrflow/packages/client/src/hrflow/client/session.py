"""SessionStore -- 内存会话 + 持久化镜像

内存中的 Session 是唯一权威来源，每次变更立即镜像到 SessionStorage。
持久化只使用固定键 token / user；旧版本按角色分开保存的 token
（admin_token 等）在加载时迁移一次后删除。
"""

import json
from pathlib import Path
from typing import Protocol

import structlog
from hrflow.core.models.session import Session, UserProfile
from pydantic import ValidationError

log = structlog.get_logger()

TOKEN_KEY = "token"
USER_KEY = "user"

# 旧版本按角色保存 token 的键，按优先级排列
LEGACY_TOKEN_KEYS: tuple[str, ...] = (
    "admin_token",
    "hr_token",
    "manager_token",
    "employee_token",
    "user_token",
)


class SessionStorage(Protocol):
    """键值持久化接口（对应浏览器 localStorage / sessionStorage）"""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def clear(self) -> None: ...


class MemorySessionStorage:
    """进程内存储"""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def keys(self) -> list[str]:
        return list(self._data)


class FileSessionStorage:
    """JSON 文件存储，每次写入整体落盘"""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._data: dict[str, str] = self._load()

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            log.warning("session_file_unreadable", path=str(self._path), error=str(e))
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _flush(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(self._data, ensure_ascii=False), encoding="utf-8")

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self._flush()

    def remove(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self._flush()

    def clear(self) -> None:
        self._data.clear()
        self._flush()


class SessionStore:
    """会话持有者

    Args:
        storage: 持久化存储（localStorage 语义）
        session_storage: 会话级存储（sessionStorage 语义），clear() 时整体清空
    """

    def __init__(
        self,
        storage: SessionStorage | None = None,
        session_storage: SessionStorage | None = None,
    ) -> None:
        self._storage = storage if storage is not None else MemorySessionStorage()
        self._session_storage = (
            session_storage if session_storage is not None else MemorySessionStorage()
        )
        self._session = self._load()

    @property
    def session(self) -> Session:
        return self._session

    @property
    def access_token(self) -> str | None:
        return self._session.access_token

    @property
    def user(self) -> UserProfile | None:
        return self._session.user

    @property
    def is_authenticated(self) -> bool:
        return self._session.is_authenticated

    def _load(self) -> Session:
        token = self._storage.get(TOKEN_KEY)
        legacy_found = False
        for key in LEGACY_TOKEN_KEYS:
            legacy = self._storage.get(key)
            if legacy is None:
                continue
            legacy_found = True
            if not token and legacy:
                token = legacy
                self._storage.set(TOKEN_KEY, legacy)
            self._storage.remove(key)
        if legacy_found:
            log.info("session_legacy_token_migrated", has_token=bool(token))

        user: UserProfile | None = None
        raw_user = self._storage.get(USER_KEY)
        if raw_user:
            try:
                user = UserProfile.model_validate_json(raw_user)
            except ValidationError:
                log.warning("session_user_unreadable")
                self._storage.remove(USER_KEY)
        return Session(access_token=token or None, user=user)

    def _purge_legacy(self) -> None:
        for key in LEGACY_TOKEN_KEYS:
            self._storage.remove(key)

    def set_credentials(self, user: UserProfile, access_token: str) -> bool:
        """登录/注册成功后写入会话

        Returns:
            False 表示 token 为空被拒绝，会话不变
        """
        if not access_token:
            log.warning("session_empty_token_rejected", user_id=user.id)
            return False
        self._session = Session(access_token=access_token, user=user)
        self._storage.set(TOKEN_KEY, access_token)
        self._storage.set(USER_KEY, user.model_dump_json())
        self._purge_legacy()
        return True

    def update_token(self, access_token: str) -> None:
        """refresh 成功后只替换 access token"""
        self._session = self._session.model_copy(update={"access_token": access_token})
        self._storage.set(TOKEN_KEY, access_token)

    def update_user(self, user: UserProfile) -> None:
        self._session = self._session.model_copy(update={"user": user})
        self._storage.set(USER_KEY, user.model_dump_json())

    def clear(self) -> None:
        """清理会话：内存、全部 token 键、user、会话级存储"""
        self._session = Session()
        self._storage.remove(TOKEN_KEY)
        self._storage.remove(USER_KEY)
        self._purge_legacy()
        self._session_storage.clear()
