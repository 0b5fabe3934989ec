#!/usr/bin/env python3
"""
Set (or bootstrap) a user's password.

Usage:
    python scripts/set_password.py <email> <password>
    python scripts/set_password.py <email> <password> --create --role ADMIN --name "Jo Bloggs"

Reads DATABASE_URL from the environment (or .env).
"""
import argparse
import asyncio
import sys

from dotenv import load_dotenv

load_dotenv()

from sqlalchemy import select  # noqa: E402

from steelworks.api.auth_routes import pwd_context  # noqa: E402
from steelworks.db import AsyncSessionLocal  # noqa: E402
from steelworks.models.orm_models import User  # noqa: E402
from steelworks.services.permissions import ROLES  # noqa: E402


async def set_password(email: str, password: str, create: bool, role: str, name: str) -> int:
    email = email.strip().lower()
    async with AsyncSessionLocal() as session:
        result = await session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
        if user is None:
            if not create:
                print(f"No user with email {email} (pass --create to add one)")
                return 1
            user = User(email=email, full_name=name or None, role=role, hashed_password="")
            session.add(user)
        user.hashed_password = pwd_context.hash(password)
        await session.commit()
        print(f"Password set for {user.full_name or '-'} ({user.email}, {user.role})")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Set a user's password")
    parser.add_argument("email")
    parser.add_argument("password")
    parser.add_argument("--create", action="store_true", help="create the user if missing")
    parser.add_argument("--role", default="ADMIN", choices=ROLES)
    parser.add_argument("--name", default="")
    args = parser.parse_args()

    if len(args.password) < 8:
        print("Password must be at least 8 characters")
        return 1
    return asyncio.run(set_password(args.email, args.password, args.create, args.role, args.name))


if __name__ == "__main__":
    sys.exit(main())
