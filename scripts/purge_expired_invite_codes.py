#!/usr/bin/env python3
"""
Cron script to delete expired, unused invite codes.

Expired codes are already hidden from every read and rejected on redeem;
this only reclaims the rows.

Usage:
    python scripts/purge_expired_invite_codes.py [--grace-days N]

Add to crontab to run automatically:
    # Every night at 3am, keeping a week of expired codes for support lookups
    0 3 * * * cd /path/to/fleetdesk-backend && python scripts/purge_expired_invite_codes.py --grace-days 7
"""

import argparse
import sys
import logging
from pathlib import Path

# Add src to path so we can import fleetdesk
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fleetdesk.db.database import session_scope
from fleetdesk.services.invitation_service import SERVICES

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)

logger = logging.getLogger(__name__)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Delete expired, unused invite codes")
    parser.add_argument(
        "--grace-days",
        type=int,
        default=0,
        help="Only delete codes that expired at least this many days ago",
    )
    args = parser.parse_args(argv)

    logger.info(f"Purging invite codes expired more than {args.grace_days} day(s) ago")

    total = 0

    try:
        with session_scope() as db:
            for kind, service_class in SERVICES.items():
                purged = service_class(db).purge_expired_codes(grace_days=args.grace_days)
                logger.info(f"  {kind} codes purged: {purged}")
                total += purged
    except Exception:
        logger.exception("Fatal error while purging invite codes")
        sys.exit(1)

    logger.info(f"Purge complete: {total} code(s) deleted")
    return total


if __name__ == "__main__":
    main()
