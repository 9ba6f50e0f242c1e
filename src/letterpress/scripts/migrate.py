# src/letterpress/scripts/migrate.py
"""Apply or roll back the Letterpress schema with Alembic."""
from __future__ import annotations

import argparse
import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

from letterpress.core.settings import settings

MIGRATIONS_DIR = Path(__file__).resolve().parents[3] / "migrations"

logger = logging.getLogger(__name__)


def alembic_config() -> Config:
    """Alembic configuration bound to the application's database URL."""
    cfg = Config(str(MIGRATIONS_DIR / "alembic.ini"))
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    cfg.set_main_option("sqlalchemy.url", settings.database_url_sync)
    return cfg


def run_upgrade_head() -> None:
    command.upgrade(alembic_config(), "head")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "revision",
        nargs="?",
        default="head",
        help="Target revision (default: head)",
    )
    parser.add_argument(
        "--downgrade",
        action="store_true",
        help="Roll back to the target revision instead of upgrading",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=settings.log_level.upper())
    cfg = alembic_config()
    if args.downgrade:
        logger.info("Downgrading schema to %s", args.revision)
        command.downgrade(cfg, args.revision)
    else:
        logger.info("Upgrading schema to %s", args.revision)
        command.upgrade(cfg, args.revision)


if __name__ == "__main__":
    main()
