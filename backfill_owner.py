"""
Script to assign legacy rows (no owner) to a user

Usage:
    python backfill_owner.py --email <email> [--dry-run]

Examples:
    python backfill_owner.py --email ana@clinica.com --dry-run   # Only count rows without owner
    python backfill_owner.py --email ana@clinica.com             # Apply
"""
import asyncio
import argparse
import os
import sys
from pathlib import Path

# Add backend directory to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))

from dotenv import load_dotenv
load_dotenv()

from config import settings
from database import Database
from app.services.owner_backfill import backfill_owner


async def run(email: str, dry_run: bool) -> int:
    database = Database(settings.DATABASE_URL)
    try:
        async with database.session_factory() as db:
            result = await backfill_owner(db, email, dry_run=dry_run)
    finally:
        await database.dispose()

    if result.get("reason") == "user_not_found":
        print(f"❌ User not found for email: {email}")
        return 1

    print(f"Rows without owner (before): {result['before']}")
    if result.get("dryRun"):
        print("DRY RUN enabled. No changes applied.")
        return 0

    print(f"✅ Updated counts: {result['updated']}")
    print(f"Rows without owner (after): {result['after']}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Assign rows without owner to a user")
    parser.add_argument("--email", default=os.getenv("TARGET_EMAIL"), help="Email of the target user")
    parser.add_argument("--dry-run", action="store_true", default=os.getenv("DRY_RUN") in ("1", "true"),
                        help="Only report what would change")
    args = parser.parse_args()

    if not args.email:
        parser.print_usage()
        return 1

    return asyncio.run(run(args.email, args.dry_run))


if __name__ == "__main__":
    sys.exit(main())
