"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、OTP 策略默认值等可配置常量。
"""

import os
from pathlib import Path


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("HRFLOW_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "HRFLOW_DB_PATH",
        str(_get_base_dir() / "sqlite" / "hrflow.db"),
    )


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def get_otp_ttl_s() -> int:
    """OTP 有效期（秒），默认 10 分钟"""
    return _int_env("HRFLOW_OTP_TTL_S", 600)


def get_otp_max_attempts() -> int:
    """单个 OTP challenge 允许的最大校验次数"""
    return _int_env("HRFLOW_OTP_MAX_ATTEMPTS", 5)


def get_otp_length() -> int:
    """OTP 位数"""
    return _int_env("HRFLOW_OTP_LENGTH", 6)


# 事件中 reason 字段的最大长度（超出截断）
REASON_MAX_LENGTH: int = 500

# 任务标题截断长度
TASK_TITLE_MAX_LENGTH: int = 200
