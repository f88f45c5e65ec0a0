"""Database maintenance commands for the feature flag backend."""

import argparse
import logging
import sys

from config import settings
from logs import configure_logging
from seed import seed_defaults
from services.database import check_connection, init_db, session_scope

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Feature flag database maintenance")
    parser.add_argument(
        "command",
        choices=["check", "init", "seed"],
        help="check the connection, create tables, or create tables and seed defaults",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    args = parser.parse_args(argv)

    configure_logging(
        level="DEBUG" if args.verbose else settings.logging.level,
        json_output=settings.logging.json_output,
        service=settings.logging.service,
    )

    if not check_connection():
        return 1
    if args.command == "check":
        logger.info("Database connection OK")
        return 0

    init_db()
    if args.command == "seed":
        with session_scope() as session:
            seed_defaults(session)
    return 0


if __name__ == "__main__":
    sys.exit(main())
