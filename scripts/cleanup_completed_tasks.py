#!/usr/bin/env python3
"""
Delete completed tasks older than the retention window (24h by default).
Meant to be run from cron.

Usage:
    python scripts/cleanup_completed_tasks.py [--dry-run]
"""
import argparse
import asyncio
import logging
import sys

from ideaflow import config
from ideaflow.database import close_db_pool, get_db_pool
from ideaflow.errors import PersistenceError
from ideaflow.gateway import PostgresGateway
from ideaflow.tasks import cleanup_completed_tasks

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def main(dry_run: bool) -> int:
    pool = await get_db_pool()
    try:
        deleted = await cleanup_completed_tasks(PostgresGateway(pool=pool), dry_run=dry_run)
    except PersistenceError as e:
        logger.error(f"Cleanup failed: {e}")
        return 1
    finally:
        await close_db_pool()

    verb = "Would delete" if dry_run else "Deleted"
    print(f"{verb} {len(deleted)} completed tasks")
    for task in deleted:
        print(f"  - {task['title']} ({task['id']})")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Delete completed tasks older than the retention window")
    parser.add_argument("--dry-run", action="store_true", help="List eligible tasks without deleting them")
    args = parser.parse_args()

    if not config.DATABASE_URL:
        print("ERROR: DATABASE_URL environment variable is not set.")
        sys.exit(1)

    sys.exit(asyncio.run(main(args.dry_run)))
