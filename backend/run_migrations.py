from __future__ import annotations

import argparse
import logging
import os
import sys

from bootstrap import (
    MIGRATION_MARKER_KEY,
    clear_bootstrap_marker,
    ensure_default_admin,
    has_bootstrap_marker,
    run_bootstrap_migrations,
    set_bootstrap_marker,
)
from database import get_db

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create tables, the default admin and default event settings.")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Run the bootstrap even if the marker already exists.",
    )
    parser.add_argument(
        "--clear-marker",
        action="store_true",
        help=f"Clear marker key `{MIGRATION_MARKER_KEY}` before running.",
    )
    parser.add_argument(
        "--clear-only",
        action="store_true",
        help="Clear marker and exit without running the bootstrap.",
    )
    parser.add_argument(
        "--admin-email",
        help="Create this admin account if it does not exist (password from ADMIN_PASSWORD).",
    )
    return parser.parse_args(argv)


def _create_admin(email: str) -> int:
    password = os.environ.get("ADMIN_PASSWORD")
    if not password:
        logger.error("ADMIN_PASSWORD must be set to create `%s`.", email)
        return 1
    db = next(get_db())
    try:
        if ensure_default_admin(db, email=email, password=password):
            logger.info("Admin `%s` created.", email)
        else:
            logger.info("Admin `%s` already exists.", email)
    finally:
        db.close()
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)

    if args.clear_marker or args.clear_only:
        removed = clear_bootstrap_marker()
        if removed:
            logger.info("Cleared bootstrap marker `%s`.", MIGRATION_MARKER_KEY)
        else:
            logger.info("Marker `%s` was already absent.", MIGRATION_MARKER_KEY)
        if args.clear_only:
            return 0

    if has_bootstrap_marker() and not args.force:
        logger.info("Bootstrap marker `%s` already exists. Use --force to rerun.", MIGRATION_MARKER_KEY)
    else:
        logger.info("Creating tables and seeding defaults...")
        run_bootstrap_migrations()
        set_bootstrap_marker()
        logger.info("Bootstrap completed and marker `%s` updated.", MIGRATION_MARKER_KEY)

    if args.admin_email:
        return _create_admin(args.admin_email.strip().lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
