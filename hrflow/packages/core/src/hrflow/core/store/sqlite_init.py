"""SQLite 数据库初始化

PRAGMA 配置 + 表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# tasks 表 DDL（events 的物化视图）
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    task_id                   TEXT PRIMARY KEY,
    title                     TEXT NOT NULL DEFAULT '',
    description               TEXT NOT NULL DEFAULT '',
    customer_id               TEXT,
    assigned_to               TEXT NOT NULL,
    assigned_by               TEXT,
    assigned_date             TEXT NOT NULL,
    expected_completion_date  TEXT,
    earliest_completion_date  TEXT,
    latest_completion_date    TEXT,
    completed_date            TEXT,
    status                    TEXT NOT NULL DEFAULT 'Not yet Started',
    pending_completion        INTEGER NOT NULL DEFAULT 0,
    reopen_reason             TEXT,
    rejection_reason          TEXT,
    custom_fields             TEXT NOT NULL DEFAULT '{}',
    version                   INTEGER NOT NULL DEFAULT 1,
    created_at                TEXT NOT NULL,
    updated_at                TEXT NOT NULL
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_assigned_to ON tasks(assigned_to);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_customer_id ON tasks(customer_id);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_created_at ON tasks(created_at DESC);",
]

# events 表 DDL（append-only）
_EVENTS_DDL = """
CREATE TABLE IF NOT EXISTS events (
    event_id        TEXT PRIMARY KEY,
    task_id         TEXT NOT NULL,
    task_seq        INTEGER NOT NULL,
    ts              TEXT NOT NULL,
    type            TEXT NOT NULL,
    schema_version  INTEGER NOT NULL DEFAULT 1,
    actor           TEXT NOT NULL,
    actor_id        TEXT NOT NULL DEFAULT '',
    payload         TEXT NOT NULL DEFAULT '{}',
    trace_id        TEXT NOT NULL DEFAULT '',

    FOREIGN KEY (task_id) REFERENCES tasks(task_id)
);
"""

_EVENTS_INDEXES = [
    # 任务内事件序号唯一约束（确保 task_seq 严格单调递增）
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_events_task_seq ON events(task_id, task_seq);",
    "CREATE INDEX IF NOT EXISTS idx_events_task_ts ON events(task_id, ts);",
]

# 每个任务至多一个有效 challenge，新签发覆盖旧的
_OTP_DDL = """
CREATE TABLE IF NOT EXISTS otp_challenges (
    task_id       TEXT PRIMARY KEY,
    code_hash     TEXT NOT NULL,
    issued_at     TEXT NOT NULL,
    expires_at    TEXT NOT NULL,
    attempts      INTEGER NOT NULL DEFAULT 0,
    max_attempts  INTEGER NOT NULL DEFAULT 5,

    FOREIGN KEY (task_id) REFERENCES tasks(task_id)
);
"""

_USERS_DDL = """
CREATE TABLE IF NOT EXISTS users (
    user_id        TEXT PRIMARY KEY,
    email          TEXT NOT NULL UNIQUE COLLATE NOCASE,
    name           TEXT NOT NULL DEFAULT '',
    role           TEXT NOT NULL DEFAULT 'employee',
    password_hash  TEXT NOT NULL,
    phone          TEXT,
    company_id     TEXT,
    is_active      INTEGER NOT NULL DEFAULT 1,
    created_at     TEXT NOT NULL
);
"""

# refresh token 只存摘要
_REFRESH_TOKENS_DDL = """
CREATE TABLE IF NOT EXISTS refresh_tokens (
    token_hash  TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL,
    issued_at   TEXT NOT NULL,
    expires_at  TEXT NOT NULL,
    revoked_at  TEXT,

    FOREIGN KEY (user_id) REFERENCES users(user_id)
);
"""

_REFRESH_TOKENS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_refresh_tokens_user ON refresh_tokens(user_id);",
]

# 单行表
_TASK_SETTINGS_DDL = """
CREATE TABLE IF NOT EXISTS task_settings (
    id          INTEGER PRIMARY KEY CHECK (id = 1),
    payload     TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
"""

_FORM_TEMPLATES_DDL = """
CREATE TABLE IF NOT EXISTS form_templates (
    template_id  TEXT PRIMARY KEY,
    name         TEXT NOT NULL,
    fields       TEXT NOT NULL DEFAULT '[]',
    created_at   TEXT NOT NULL
);
"""

_FORM_RESPONSES_DDL = """
CREATE TABLE IF NOT EXISTS form_responses (
    task_id       TEXT NOT NULL,
    template_id   TEXT NOT NULL,
    submitted_by  TEXT NOT NULL,
    answers       TEXT NOT NULL DEFAULT '{}',
    submitted_at  TEXT NOT NULL,

    PRIMARY KEY (task_id, template_id),
    FOREIGN KEY (task_id) REFERENCES tasks(task_id),
    FOREIGN KEY (template_id) REFERENCES form_templates(template_id)
);
"""

_ALL_DDL = [
    _TASKS_DDL,
    _EVENTS_DDL,
    _OTP_DDL,
    _USERS_DDL,
    _REFRESH_TOKENS_DDL,
    _TASK_SETTINGS_DDL,
    _FORM_TEMPLATES_DDL,
    _FORM_RESPONSES_DDL,
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    for ddl in _ALL_DDL:
        await conn.execute(ddl)

    for idx_sql in _TASKS_INDEXES + _EVENTS_INDEXES + _REFRESH_TOKENS_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效"""
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
