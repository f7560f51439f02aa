"""Manual Garmin sync for one user - same pipeline as POST /api/garmin/sync."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.config import get_settings
from app.database import SessionLocal, run_migrations
from app.exceptions import CoachError
from app.logging_config import configure_logging
from app.services.credential_vault import CredentialVault
from app.services.garmin_adapter import GarminConnector
from app.services.sync_service import SyncService, resolve_date_range


logger = logging.getLogger("scripts.sync_data")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Sync Garmin activities, health and running fitness for a user",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Sync the last 30 days for user 1
  python scripts/sync_data.py --user-id 1

  # Sync a specific range
  python scripts/sync_data.py --user-id 1 --start 2026-02-01 --end 2026-02-03
        """
    )
    parser.add_argument("--user-id", type=int, required=True, help="Local user id with Garmin connected")
    parser.add_argument("--start", type=str, help="First day to sync (YYYY-MM-DD). Defaults to 30 days ago.")
    parser.add_argument("--end", type=str, help="Last day to sync (YYYY-MM-DD). Defaults to today.")
    parser.add_argument(
        "--skip-migrations",
        action="store_true",
        help="Do not apply Alembic migrations before syncing"
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()

    configure_logging()
    settings = get_settings()

    try:
        start, end = resolve_date_range(args.start, args.end)
        vault = CredentialVault(settings.encryption_key)
    except CoachError as err:
        logger.error("❌ %s", err.message)
        sys.exit(1)

    if not args.skip_migrations:
        run_migrations()

    logger.info("🔄 Syncing Garmin data for user %s (%s..%s)", args.user_id, start, end)
    logger.info("%s", "=" * 50)

    connector = GarminConnector(vault, http_timeout=settings.garmin_http_timeout_seconds)
    service = SyncService(connector, SessionLocal)

    try:
        report = asyncio.run(service.sync_all(args.user_id, start, end))
    except CoachError as err:
        logger.error("❌ Could not open Garmin session: %s", err.message)
        sys.exit(1)

    for label, result in (
        ("Activities", report.activities),
        ("Health", report.health),
        ("Fitness", report.fitness),
    ):
        marker = "✅" if result.success else "❌"
        logger.info("%s %s: %s", marker, label, result.message)

    logger.info("%s", "=" * 50)
    if not report.success:
        logger.error("❌ Sync incomplete for user %s", args.user_id)
        sys.exit(1)
    logger.info("✅ Sync complete for user %s", args.user_id)


if __name__ == "__main__":
    main()
