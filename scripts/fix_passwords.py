#!/usr/bin/env python3
"""
Re-hash the passwords of the two seeded accounts (admin/admin123, testuser/user123)
and verify them. Use after changing BCRYPT_ROUNDS or importing broken hashes.
Run from the repo root: python -m scripts.fix_passwords [--force]
"""
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from scripts.common import parse_args, refuse_production

SEEDED_PASSWORDS = {"admin": "admin123", "testuser": "user123"}


async def fix_passwords(db) -> dict[str, bool]:
    """Returns {username: verified} for each seeded account found."""
    from sqlalchemy import select
    from opsconsole.models import User
    from opsconsole.services.auth_service import hash_password, verify_password

    results = {}
    for username, password in SEEDED_PASSWORDS.items():
        user = (await db.execute(select(User).where(User.username == username))).scalar_one_or_none()
        if not user:
            print(f"  {username}: not found, skipped")
            continue
        user.password_hash = hash_password(password)
        results[username] = verify_password(password, user.password_hash)
    await db.flush()
    return results


async def main():
    args = parse_args("Re-hash the seeded account passwords")
    refuse_production(args.force)

    from opsconsole.database import async_session

    async with async_session() as db:
        results = await fix_passwords(db)
        await db.commit()

    for username, ok in results.items():
        print(f"  {username}: {'updated' if ok else 'VERIFY FAILED'}")
    if not all(results.values()):
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
