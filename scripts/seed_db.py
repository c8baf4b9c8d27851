"""
Seed script for the CivicFix database (Firestore or the in-memory mock).

Usage:
  - Dry run (default): python scripts/seed_db.py
  - Apply to configured DB: python scripts/seed_db.py --apply
  - Use a different seed file: python scripts/seed_db.py --apply --seed ./my_seed.json

Behavior:
  - Loads `db_seed.json` from repo root: {"users": [...], "reports": [...]}.
  - Users are written with their given ids; reports go through the
    backend insert so ids, timestamps and versions are assigned normally.

NOTE: When applying to real Firestore, ensure `FIREBASE_CREDENTIALS_PATH` is set and `USE_MOCK_DB=false` in `.env`.
"""

import argparse
import asyncio
import json
import logging
import os

from civicfix.core.logging_config import configure_logging
from civicfix.core.settings import settings
from civicfix.models.report import Report
from civicfix.models.user import User
from civicfix.services.persistence import get_backend

logger = logging.getLogger("seed_db")


def load_seed(path: str = "./db_seed.json") -> dict:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def validate_seed(seed: dict) -> None:
    """Fail before writing anything if a record would not load."""
    for user in seed.get("users", []):
        User.model_validate(user)
    for index, report in enumerate(seed.get("reports", [])):
        Report.model_validate({"id": f"seed-{index}", **report})


async def write_to_db(seed: dict, apply: bool = False) -> None:
    backend = get_backend()
    for user in seed.get("users", []):
        print(f"Preparing: {settings.USERS_COLLECTION}/{user['id']} ({user['user_type']})")
        if apply:
            await backend.insert(settings.USERS_COLLECTION, user)

    for report in seed.get("reports", []):
        print(f"Preparing: {settings.REPORTS_COLLECTION} '{report['title']}' [{report.get('status', 'pending')}]")
        if apply:
            row = await backend.insert(settings.REPORTS_COLLECTION, report)
            print(f"Wrote: {settings.REPORTS_COLLECTION}/{row['id']}")


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--apply", action="store_true", help="Write seed to the DB instead of dry-run")
    parser.add_argument("--seed", default=os.path.join(os.getcwd(), "db_seed.json"), help="Seed file path")
    args = parser.parse_args()

    configure_logging()

    if not os.path.exists(args.seed):
        print(f"Seed file not found: {args.seed}")
        return

    seed = load_seed(args.seed)
    validate_seed(seed)
    asyncio.run(write_to_db(seed, apply=args.apply))

    if args.apply:
        print("Seeding completed.")
    else:
        print("Dry run complete. Re-run with --apply to write to DB.")


if __name__ == "__main__":
    main()
