"""OTP challenge 存储 -- 每个任务至多一个有效 challenge"""

from datetime import datetime

import aiosqlite

from ..otp import OtpChallenge


class SqliteOtpStore:
    """OtpStore 的 SQLite 实现

    写操作均不提交事务，由调用方与事件写入一并提交。
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def put_challenge(self, challenge: OtpChallenge) -> None:
        """写入 challenge，覆盖该任务已有的 challenge"""
        await self._conn.execute(
            """
            INSERT OR REPLACE INTO otp_challenges
                (task_id, code_hash, issued_at, expires_at, attempts, max_attempts)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                challenge.task_id,
                challenge.code_hash,
                challenge.issued_at.isoformat(),
                challenge.expires_at.isoformat(),
                challenge.attempts,
                challenge.max_attempts,
            ),
        )

    async def get_challenge(self, task_id: str) -> OtpChallenge | None:
        cursor = await self._conn.execute(
            "SELECT * FROM otp_challenges WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return OtpChallenge(
            task_id=row["task_id"],
            code_hash=row["code_hash"],
            issued_at=datetime.fromisoformat(row["issued_at"]),
            expires_at=datetime.fromisoformat(row["expires_at"]),
            attempts=row["attempts"],
            max_attempts=row["max_attempts"],
        )

    async def delete_challenge(self, task_id: str) -> None:
        await self._conn.execute(
            "DELETE FROM otp_challenges WHERE task_id = ?",
            (task_id,),
        )
