"""TaskSettings 存储 -- task_settings 单行表"""

from datetime import UTC, datetime

import aiosqlite

from ..models.settings import TaskSettings


class SqliteSettingsStore:
    """SettingsStore 的 SQLite 实现

    未写入过设置时返回默认 TaskSettings。
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def get_settings(self) -> TaskSettings:
        cursor = await self._conn.execute("SELECT payload FROM task_settings WHERE id = 1")
        row = await cursor.fetchone()
        if row is None:
            return TaskSettings()
        return TaskSettings.model_validate_json(row["payload"])

    async def save_settings(self, settings: TaskSettings) -> None:
        await self._conn.execute(
            """
            INSERT INTO task_settings (id, payload, updated_at) VALUES (1, ?, ?)
            ON CONFLICT(id) DO UPDATE SET payload = excluded.payload,
                                          updated_at = excluded.updated_at
            """,
            (settings.model_dump_json(), datetime.now(UTC).isoformat()),
        )
        await self._conn.commit()
