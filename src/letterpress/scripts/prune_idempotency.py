"""Delete saved idempotent responses past their retention window."""
from __future__ import annotations

import argparse
import logging
from datetime import timedelta

from letterpress.core.settings import settings
from letterpress.db.session import SessionLocal
from letterpress.db.time import utcnow
from letterpress.services.idempotency import purge_expired_records

logger = logging.getLogger(__name__)


def prune(older_than_hours: int) -> int:
    """Remove completed records older than ``older_than_hours`` and return the count."""
    cutoff = utcnow() - timedelta(hours=older_than_hours)
    with SessionLocal() as db:
        removed = purge_expired_records(db, cutoff)
        db.commit()
    logger.info("Pruned %d idempotency records created before %s", removed, cutoff.isoformat())
    return removed


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--older-than-hours",
        type=int,
        default=settings.idempotency_ttl_hours,
        help="Retention window in hours (default: IDEMPOTENCY_TTL_HOURS).",
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=settings.log_level.upper())
    prune(args.older_than_hours)


if __name__ == "__main__":
    main()
