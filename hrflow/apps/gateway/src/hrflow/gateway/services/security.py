"""Token 工具 -- JWT access token + 不透明 refresh token

access token: HS256 JWT，sub=user_id，携带 role。
refresh token: secrets.token_urlsafe 随机串，库中只存 sha256 摘要。
"""

import hashlib
import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from ..config import GatewayConfig


def create_access_token(
    config: GatewayConfig,
    user_id: str,
    role: str,
    *,
    now: datetime | None = None,
    ttl_s: int | None = None,
) -> str:
    """签发 access token"""
    now = now or datetime.now(UTC)
    payload = {
        "sub": user_id,
        "role": role,
        "type": "access",
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl_s or config.access_token_ttl_s)).timestamp()),
        # 同一秒内签发的 token 也互不相同
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(
        payload,
        config.jwt_secret.get_secret_value(),
        algorithm=config.jwt_algorithm,
    )


def decode_access_token(config: GatewayConfig, token: str) -> dict[str, Any]:
    """校验并解码 access token

    Raises:
        jwt.ExpiredSignatureError: 已过期
        jwt.InvalidTokenError: 签名/格式无效
    """
    payload = jwt.decode(
        token,
        config.jwt_secret.get_secret_value(),
        algorithms=[config.jwt_algorithm],
    )
    if payload.get("type") != "access" or not payload.get("sub"):
        raise jwt.InvalidTokenError("not an access token")
    return payload


def generate_refresh_token() -> str:
    return secrets.token_urlsafe(32)


def hash_refresh_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
