"""ClientConfig -- Client 配置加载

从环境变量加载配置，API 基础地址按当前页面主机名解析。
"""

import os
from urllib.parse import urlsplit

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger()

DEFAULT_API_BASE_URL = "http://localhost:8000/api"

_LOCAL_HOSTNAMES = frozenset({"localhost", "127.0.0.1", "0.0.0.0", "[::1]", "::1"})
_LOCAL_PREFIXES = ("192.168.", "10.", "172.16.")


def is_local_hostname(hostname: str) -> bool:
    """判断是否本地/内网主机名"""
    host = hostname.strip().lower()
    return host in _LOCAL_HOSTNAMES or host.startswith(_LOCAL_PREFIXES)


def resolve_api_base_url(
    hostname: str | None = None,
    env_url: str | None = None,
    origin: str | None = None,
) -> str:
    """解析 API 基础地址

    优先级：
    1. 本地主机名 -> http://localhost:8000/api
    2. 显式配置的 env_url
    3. 页面 origin + /api
    4. 默认 http://localhost:8000/api

    Args:
        hostname: 当前页面主机名（None 时从 origin 推导）
        env_url: HRFLOW_API_URL 覆盖值
        origin: 当前页面 origin，如 https://hr.example.com

    Returns:
        不带结尾斜杠的 API 基础地址
    """
    if hostname is None and origin:
        hostname = urlsplit(origin).hostname
    if hostname and is_local_hostname(hostname):
        return DEFAULT_API_BASE_URL
    if env_url:
        return env_url.rstrip("/")
    if origin:
        return f"{origin.rstrip('/')}/api"
    return DEFAULT_API_BASE_URL


class ClientConfig(BaseModel):
    """Client 包配置 -- 从环境变量加载

    环境变量:
        HRFLOW_API_URL: API 地址覆盖
        HRFLOW_APP_ORIGIN: 前端页面 origin（用于推导 API 地址）
        HRFLOW_HTTP_TIMEOUT_S: 请求超时（秒，默认 30）
        HRFLOW_SESSION_FILE: 会话持久化文件（不设置则只保存在内存中）
    """

    api_base_url: str = Field(
        default=DEFAULT_API_BASE_URL,
        description="API 基础 URL",
    )
    timeout_s: float = Field(
        default=30.0,
        gt=0,
        description="请求超时（秒）",
    )
    session_file: str | None = Field(
        default=None,
        description="会话持久化文件路径",
    )


def load_client_config() -> ClientConfig:
    """从环境变量加载 Client 配置

    Returns:
        ClientConfig 实例
    """
    kwargs: dict = {
        "api_base_url": resolve_api_base_url(
            env_url=os.environ.get("HRFLOW_API_URL"),
            origin=os.environ.get("HRFLOW_APP_ORIGIN"),
        ),
    }

    if val := os.environ.get("HRFLOW_HTTP_TIMEOUT_S"):
        try:
            timeout = float(val)
            if timeout <= 0:
                raise ValueError(val)
            kwargs["timeout_s"] = timeout
        except ValueError:
            log.warning(
                "invalid_timeout_config",
                env_var="HRFLOW_HTTP_TIMEOUT_S",
                value=val,
                fallback=30.0,
            )

    if val := os.environ.get("HRFLOW_SESSION_FILE"):
        kwargs["session_file"] = val

    return ClientConfig(**kwargs)
