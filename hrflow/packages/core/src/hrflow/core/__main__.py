"""CLI 入口模块 -- python -m hrflow.core <command>

支持的命令：
  rebuild-projections  从 events 表重建 tasks 表
  create-user          创建账号（用于初始化管理员）
"""

import argparse
import asyncio
import sys
from datetime import UTC, datetime

from ulid import ULID

from .config import get_db_path
from .models.enums import UserRole


def main(argv: list[str] | None = None) -> None:
    """CLI 主入口"""
    parser = argparse.ArgumentParser(prog="python -m hrflow.core")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("rebuild-projections", help="从 events 表重建 tasks 表")
    create = sub.add_parser("create-user", help="创建账号")
    create.add_argument("email")
    create.add_argument("password")
    create.add_argument("--name", default="")
    create.add_argument(
        "--role",
        default=UserRole.EMPLOYEE.value,
        choices=[r.value for r in UserRole],
    )

    args = parser.parse_args(argv)
    if args.command == "rebuild-projections":
        asyncio.run(rebuild_projections())
    elif args.command == "create-user":
        asyncio.run(create_user(args.email, args.password, args.name, UserRole(args.role)))
    else:
        parser.print_help()
        sys.exit(1)


async def rebuild_projections() -> None:
    """执行 Projection 重建"""
    from .projection import rebuild_all
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")
    print("开始重建 Projection...")

    store_group = await create_store_group(db_path)
    try:
        event_count = await rebuild_all(
            store_group.conn,
            store_group.event_store,
            store_group.task_store,
        )
        print(f"重建完成，处理 {event_count} 条事件")
    finally:
        await store_group.conn.close()


async def create_user(email: str, password: str, name: str, role: UserRole) -> None:
    """创建账号"""
    from .passwords import hash_password
    from .store import StoredUser, UserExistsError, create_store_group

    store_group = await create_store_group(get_db_path())
    try:
        user = StoredUser(
            user_id=str(ULID()),
            email=email.strip(),
            name=name,
            role=role,
            password_hash=hash_password(password),
            created_at=datetime.now(UTC),
        )
        try:
            await store_group.user_store.create_user(user)
        except UserExistsError as exc:
            print(f"创建失败: {exc}")
            sys.exit(1)
        print(f"已创建 {role.value} 账号: {user.email} ({user.user_id})")
    finally:
        await store_group.conn.close()


if __name__ == "__main__":
    main()
