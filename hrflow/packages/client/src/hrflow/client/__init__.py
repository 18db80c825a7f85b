"""hrflow Client -- 认证请求层与任务接口

packages/client 的公开接口导出。
"""

# 核心组件
from .client import AuthenticatedClient, Navigator, error_message

# 命令层
from .commands import Notice, NoticeLevel, TaskBoard, TaskCommands

# 配置
from .config import ClientConfig, load_client_config, resolve_api_base_url

# 异常
from .exceptions import (
    ApiError,
    ClientError,
    InvalidInputError,
    SessionTerminatedError,
    TokenRefreshError,
)
from .refresh import RefreshCoordinator, RefreshState
from .session import FileSessionStorage, MemorySessionStorage, SessionStore
from .tasks import CustomerTaskApi, OtpIssued, TaskApi, TransitionOutcome

__all__ = [
    "AuthenticatedClient",
    "Navigator",
    "error_message",
    "RefreshCoordinator",
    "RefreshState",
    "SessionStore",
    "MemorySessionStorage",
    "FileSessionStorage",
    "TaskApi",
    "CustomerTaskApi",
    "TransitionOutcome",
    "OtpIssued",
    "TaskBoard",
    "TaskCommands",
    "Notice",
    "NoticeLevel",
    "ClientConfig",
    "load_client_config",
    "resolve_api_base_url",
    "ClientError",
    "ApiError",
    "TokenRefreshError",
    "SessionTerminatedError",
    "InvalidInputError",
]
