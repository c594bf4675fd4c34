#!/usr/bin/env python3
"""Seed the demo accounts and check that their credentials log in.

The directory lives in process memory, so a running server seeds itself when
started with SEED_DEMO_USERS=true. This script builds the same runtime, seeds
it, and logs each demo account in through the account service so a broken
hasher or seed table shows up before deploy.

Usage:
    python scripts/seed_users.py
    python scripts/seed_users.py --dry-run
    python scripts/seed_users.py --show-tokens

Environment Variables:
    JWT_SECRET: Token signing secret (a throwaway one is generated if unset)
    REDIS_URL: Session store (falls back to in-memory sessions if unreachable)
"""
from __future__ import annotations

import argparse
import asyncio
import os
import secrets
import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


async def seed_and_verify(dry_run: bool = False) -> list[dict]:
    """Seed the demo accounts, then log each one in.

    Returns:
        one dict per demo account with phone_number, role, status and token
    """
    # Import here to avoid loading config before env vars are set
    from gadamagado.service.runtime import get_runtime
    from gadamagado.storage.seed import DEMO_USERS, seed_demo_users

    if dry_run:
        for account in DEMO_USERS:
            print(f"[DRY RUN] Would create {account['role']} {account['phone_number']}")
        return [
            {"phone_number": account["phone_number"], "role": account["role"], "status": "dry_run"}
            for account in DEMO_USERS
        ]

    runtime = get_runtime()
    created = {user.phone_number for user in seed_demo_users(runtime.store)}
    results = []
    try:
        for account in DEMO_USERS:
            login = await runtime.accounts.login(account["phone_number"], account["password"])
            results.append(
                {
                    "phone_number": account["phone_number"],
                    "role": login.principal.role,
                    "user_id": login.principal.id,
                    "status": "created" if account["phone_number"] in created else "existing",
                    "token": login.token,
                }
            )
    finally:
        await runtime.close()
    return results


def main():
    parser = argparse.ArgumentParser(
        description="Seed and verify the Gad ama Gado demo accounts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without making changes",
    )
    parser.add_argument(
        "--show-tokens",
        action="store_true",
        help="Print the bearer token issued for each demo login",
    )

    args = parser.parse_args()

    if not os.environ.get("JWT_SECRET"):
        os.environ["JWT_SECRET"] = secrets.token_urlsafe(48)

    if not os.environ.get("SHARED_FS_ROOT"):
        os.environ["SHARED_FS_ROOT"] = "/tmp/gadamagado-seed"

    os.environ.setdefault("ALLOW_REDIS_FALLBACK_DEV", "true")

    try:
        results = asyncio.run(seed_and_verify(args.dry_run))
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)

    for result in results:
        line = f"  {result['role']:<6} {result['phone_number']}  {result['status']}"
        if args.show_tokens and result.get("token"):
            line += f"  token={result['token'][:50]}..."
        print(line)


if __name__ == "__main__":
    main()
