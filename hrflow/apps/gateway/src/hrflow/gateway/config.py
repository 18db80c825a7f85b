"""GatewayConfig -- 网关认证配置

从环境变量加载，JWT 密钥使用 SecretStr 避免被打印。
"""

import os
import secrets

import structlog
from pydantic import BaseModel, Field, SecretStr

log = structlog.get_logger()


class GatewayConfig(BaseModel):
    """网关配置

    环境变量:
        HRFLOW_JWT_SECRET: access token 签名密钥（未设置时进程内随机生成）
        HRFLOW_ACCESS_TOKEN_TTL_S: access token 有效期（秒，默认 900）
        HRFLOW_REFRESH_TOKEN_TTL_S: refresh token 有效期（秒，默认 7 天）
        HRFLOW_COOKIE_SECURE: refreshToken cookie 是否带 Secure（默认 false）
    """

    jwt_secret: SecretStr = Field(
        default_factory=lambda: SecretStr(secrets.token_urlsafe(32)),
        description="HS256 签名密钥",
    )
    jwt_algorithm: str = Field(default="HS256")
    access_token_ttl_s: int = Field(default=900, ge=1, description="access token 有效期（秒）")
    refresh_token_ttl_s: int = Field(
        default=7 * 24 * 3600,
        ge=60,
        description="refresh token 有效期（秒）",
    )
    cookie_secure: bool = Field(default=False, description="refreshToken cookie Secure 标记")
    refresh_cookie_name: str = Field(default="refreshToken")


def _int_env(name: str, default: int) -> int:
    val = os.environ.get(name)
    if not val:
        return default
    try:
        return int(val)
    except ValueError:
        log.warning("invalid_int_config", env_var=name, value=val, fallback=default)
        return default


def load_gateway_config() -> GatewayConfig:
    """从环境变量加载网关配置"""
    kwargs: dict = {
        "access_token_ttl_s": _int_env("HRFLOW_ACCESS_TOKEN_TTL_S", 900),
        "refresh_token_ttl_s": _int_env("HRFLOW_REFRESH_TOKEN_TTL_S", 7 * 24 * 3600),
        "cookie_secure": os.environ.get("HRFLOW_COOKIE_SECURE", "false").lower() == "true",
    }
    if val := os.environ.get("HRFLOW_JWT_SECRET"):
        kwargs["jwt_secret"] = SecretStr(val)
    else:
        log.warning("jwt_secret_not_configured", message="using an ephemeral signing key")
    return GatewayConfig(**kwargs)
