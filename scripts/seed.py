#!/usr/bin/env python3
"""
Seed a fresh database: admin/admin123 (ADMIN), testuser/user123 (USER),
sample tags, two welcome posts and the site settings. Idempotent.
Run from the repo root: python -m scripts.seed [--force]
"""
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from scripts.common import parse_args, refuse_production

SEED_USERS = [
    ("admin", "admin@example.com", "admin123", "ADMIN"),
    ("testuser", "user@example.com", "user123", "USER"),
]

SEED_TAGS = [
    ("技术", "#1890ff"),
    ("生活", "#52c41a"),
    ("学习", "#faad14"),
    ("工作", "#f5222d"),
]

SEED_CONFIGS = [
    ("site_name", "管理后台系统", "STRING"),
    ("site_description", "一个功能完整的管理后台系统", "STRING"),
    ("posts_per_page", "10", "NUMBER"),
]

WELCOME_POSTS = [
    (
        "欢迎使用管理后台系统",
        "介绍管理后台系统的主要功能",
        "# 欢迎使用管理后台系统\n\n"
        "- **用户管理**: 用户注册、登录、权限管理\n"
        "- **文章管理**: 文章的创建、编辑、发布、归档\n"
        "- **标签管理**: 标签的创建和管理\n",
        ["技术", "学习"],
    ),
    (
        "系统使用指南",
        "系统角色与操作说明",
        "# 系统使用指南\n\n"
        "## 管理员 (ADMIN)\n可以管理所有用户和文章。\n\n"
        "## 版主 (MODERATOR)\n可以管理文章和标签。\n\n"
        "## 普通用户 (USER)\n可以创建和管理自己的文章。\n",
        ["技术"],
    ),
]


async def seed_database(db) -> dict:
    """Insert whatever seed rows are missing. Returns counts of rows created."""
    from sqlalchemy import select
    from opsconsole.models import Post, PostStatus, SystemConfig, Tag, User
    from opsconsole.services.auth_service import hash_password

    created = {"users": 0, "tags": 0, "posts": 0, "configs": 0}

    users = {}
    for username, email, password, role in SEED_USERS:
        user = (await db.execute(select(User).where(User.username == username))).scalar_one_or_none()
        if not user:
            user = User(
                username=username,
                email=email,
                password_hash=hash_password(password),
                role=role,
                is_active=True,
            )
            db.add(user)
            created["users"] += 1
        users[username] = user

    tags = {}
    for name, color in SEED_TAGS:
        tag = (await db.execute(select(Tag).where(Tag.name == name))).scalar_one_or_none()
        if not tag:
            tag = Tag(name=name, color=color)
            db.add(tag)
            created["tags"] += 1
        tags[name] = tag
    await db.flush()

    for title, summary, content, tag_names in WELCOME_POSTS:
        exists = (await db.execute(select(Post.id).where(Post.title == title))).first()
        if exists:
            continue
        db.add(Post(
            title=title,
            summary=summary,
            content=content,
            status=PostStatus.PUBLISHED.value,
            author_id=users["admin"].id,
            tags=[tags[n] for n in tag_names],
        ))
        created["posts"] += 1

    for key, value, type_ in SEED_CONFIGS:
        exists = (await db.execute(select(SystemConfig.id).where(SystemConfig.key == key))).first()
        if not exists:
            db.add(SystemConfig(key=key, value=value, type=type_))
            created["configs"] += 1

    await db.flush()
    return created


async def main():
    args = parse_args("Seed the console database")
    refuse_production(args.force)

    from opsconsole.database import async_session, init_db

    await init_db()
    async with async_session() as db:
        created = await seed_database(db)
        await db.commit()

    print(f"Seed complete: {created}")
    print("Admin account:  admin / admin123")
    print("Test account:   testuser / user123")


if __name__ == "__main__":
    asyncio.run(main())
