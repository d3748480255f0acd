#!/usr/bin/env python3
"""
Seed the application database with a sample add-on and dataclips.

Usage:
  python scripts/seed.py
  python scripts/seed.py --no-clear
"""
import argparse
import sys

from core.config import Settings
from core.container import container
from core.logging import configure_logging

SAMPLE_ADDON = {
    "uuid": "a1b2c3d4-e5f6-4789-a012-3456789abcde",
    "name": "postgresql-dev-12345",
}

SAMPLE_CREATORS = ["admin", "finance_team"]

SAMPLE_DATACLIPS = [
    {
        "title": "Total User Count",
        "description": "Get the total number of users in the system",
        "sql_query": "SELECT COUNT(*) as total_users FROM users;",
        "created_by": "admin",
    },
    {
        "title": "Recent User Signups",
        "description": "Users who signed up in the last 7 days",
        "sql_query": (
            "SELECT id, email, created_at FROM users "
            "WHERE created_at >= NOW() - INTERVAL '7 days' ORDER BY created_at DESC;"
        ),
        "created_by": "admin",
    },
    {
        "title": "Monthly Revenue Report",
        "description": "Revenue breakdown by month for the current year",
        "sql_query": (
            "SELECT DATE_TRUNC('month', created_at) as month, SUM(amount) as revenue "
            "FROM orders WHERE created_at >= DATE_TRUNC('year', NOW()) "
            "GROUP BY month ORDER BY month;"
        ),
        "created_by": "finance_team",
    },
]


def seed(clear: bool = True) -> int:
    """Insert the sample records. Returns the number of failed dataclips."""
    database = container.database()
    service = container.dataclip_service()

    if clear:
        print("  - Clearing existing sample data...")
        database.delete_addon_by_name(SAMPLE_ADDON["name"])
        database.delete_dataclips_by_creator(SAMPLE_CREATORS)

    addon = database.upsert_addon(SAMPLE_ADDON["uuid"], SAMPLE_ADDON["name"])
    print(f"  Created addon: {addon.name} (UUID: {addon.uuid})")

    failures = 0
    for sample in SAMPLE_DATACLIPS:
        result = service.create({
            **sample,
            "addon_id": SAMPLE_ADDON["uuid"],
            "addon_name": SAMPLE_ADDON["name"],
        })
        if result.success:
            print(f"  Created dataclip: {sample['title']} (slug: {result.dataclip.slug})")
        else:
            failures += 1
            print(f"  Failed to create dataclip: {sample['title']} - {', '.join(result.errors)}")

    print("\nAvailable dataclips:")
    for dataclip in service.list_all():
        print(f"  - {dataclip.slug}: {dataclip.title}")
    return failures


def main():
    parser = argparse.ArgumentParser(description="Seed sample dataclips")
    parser.add_argument("--no-clear", action="store_true",
                        help="Keep existing sample add-on and dataclips")
    args = parser.parse_args()

    configure_logging(Settings(log_format="console"))
    container.database().startup()
    container.cache_backend().startup()
    try:
        print("Seeding database...")
        failures = seed(clear=not args.no_clear)
    finally:
        container.cache_backend().shutdown()
        container.database().shutdown()

    sys.exit(1 if failures else 0)


if __name__ == "__main__":
    main()
