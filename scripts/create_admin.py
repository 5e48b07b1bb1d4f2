#!/usr/bin/env python3
"""Provision a CleanMatch admin account.

Admins cannot register through the API. Run this against the configured
database to create one, or to promote an existing account.

Usage:
    python scripts/create_admin.py --email admin@example.com --password 'S3cure!pass'

    # Or via environment variables:
    ADMIN_EMAIL=admin@example.com ADMIN_PASSWORD='S3cure!pass' python scripts/create_admin.py

Environment Variables:
    ADMIN_EMAIL: Email for the admin user
    ADMIN_PASSWORD: Password (same strength rules as registration)
    DATABASE_URL: PostgreSQL connection string
"""

import argparse
import asyncio
import os
import sys

from cleanmatch.core import async_session_maker, engine
from cleanmatch.services.auth import AuthService
from cleanmatch.services.errors import AuthError
from cleanmatch.services.token_blacklist import MemoryTokenBlacklist


async def create_admin(email: str, password: str, first_name: str, last_name: str) -> int:
    async with async_session_maker() as db:
        # The blacklist is never touched while provisioning
        service = AuthService(db, MemoryTokenBlacklist())
        try:
            user, status = await service.ensure_admin(email, password, first_name, last_name)
        except AuthError as e:
            print(f"ERROR: {e.message}")
            return 1

    messages = {
        "created": "Created admin user",
        "promoted": "Promoted existing user to admin",
        "already_admin": "User is already an admin",
    }
    print(f"{messages[status]}: {user.email} (id: {user.id})")
    await engine.dispose()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Create or promote a CleanMatch admin")
    parser.add_argument("--email", default=os.environ.get("ADMIN_EMAIL"))
    parser.add_argument("--password", default=os.environ.get("ADMIN_PASSWORD"))
    parser.add_argument("--first-name", default="Admin")
    parser.add_argument("--last-name", default="User")
    args = parser.parse_args()

    if not args.email or not args.password:
        print("ERROR: --email and --password (or ADMIN_EMAIL / ADMIN_PASSWORD) are required")
        sys.exit(1)

    sys.exit(asyncio.run(create_admin(args.email, args.password, args.first_name, args.last_name)))


if __name__ == "__main__":
    main()
