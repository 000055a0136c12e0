"""Create an admin account.

Usage: python scripts/create_admin.py USERNAME EMAIL PASSWORD
Applies the registration rules (email format, username 3-50 chars, password policy)
and refuses duplicate usernames or emails.
"""
import argparse
import asyncio
import logging
import os
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.database import engine, get_db_session
from app.services.user_service import UserService


async def create_admin(username: str, email: str, password: str) -> int:
    try:
        async with get_db_session() as db:
            user = await UserService(db).create_admin(username, email, password)
            print(f"Admin user '{user.username}' created (id={user.id})")
        return 0
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    finally:
        await engine.dispose()


def main() -> int:
    parser = argparse.ArgumentParser(description="Create a new admin user")
    parser.add_argument("username")
    parser.add_argument("email")
    parser.add_argument("password")
    args = parser.parse_args()
    return asyncio.run(create_admin(args.username, args.email, args.password))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    sys.exit(main())
