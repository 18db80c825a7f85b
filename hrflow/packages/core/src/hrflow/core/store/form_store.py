"""表单模板与回答存储

回答以 (task_id, template_id) 为主键；put_response 为 upsert，
写操作不提交事务，由调用方与 FORM_SUBMITTED 事件一并提交。
"""

import json
from datetime import datetime

import aiosqlite

from ..models.form import FormField, FormResponse, FormTemplate


class SqliteFormStore:
    """FormStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_template(self, template: FormTemplate) -> None:
        await self._conn.execute(
            "INSERT INTO form_templates (template_id, name, fields, created_at) VALUES (?, ?, ?, ?)",
            (
                template.template_id,
                template.name,
                json.dumps([f.model_dump() for f in template.fields], ensure_ascii=False),
                template.created_at.isoformat(),
            ),
        )
        await self._conn.commit()

    async def get_template(self, template_id: str) -> FormTemplate | None:
        cursor = await self._conn.execute(
            "SELECT * FROM form_templates WHERE template_id = ?",
            (template_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_template(row) if row is not None else None

    async def list_templates(self) -> list[FormTemplate]:
        cursor = await self._conn.execute("SELECT * FROM form_templates ORDER BY created_at ASC")
        rows = await cursor.fetchall()
        return [self._row_to_template(row) for row in rows]

    async def get_response(self, task_id: str, template_id: str) -> FormResponse | None:
        cursor = await self._conn.execute(
            "SELECT * FROM form_responses WHERE task_id = ? AND template_id = ?",
            (task_id, template_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return FormResponse(
            task_id=row["task_id"],
            template_id=row["template_id"],
            submitted_by=row["submitted_by"],
            answers=json.loads(row["answers"]),
            submitted_at=datetime.fromisoformat(row["submitted_at"]),
        )

    async def put_response(self, response: FormResponse) -> None:
        """写入回答，同键覆盖（不提交事务）"""
        await self._conn.execute(
            """
            INSERT INTO form_responses (task_id, template_id, submitted_by, answers, submitted_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(task_id, template_id) DO UPDATE SET
                submitted_by = excluded.submitted_by,
                answers = excluded.answers,
                submitted_at = excluded.submitted_at
            """,
            (
                response.task_id,
                response.template_id,
                response.submitted_by,
                json.dumps(response.answers, ensure_ascii=False),
                response.submitted_at.isoformat(),
            ),
        )

    @staticmethod
    def _row_to_template(row: aiosqlite.Row) -> FormTemplate:
        return FormTemplate(
            template_id=row["template_id"],
            name=row["name"],
            fields=[FormField(**f) for f in json.loads(row["fields"])],
            created_at=datetime.fromisoformat(row["created_at"]),
        )
