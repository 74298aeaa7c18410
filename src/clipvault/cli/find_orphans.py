"""CLI command for reporting orphaned uploads in the backup store.

Usage:
    python -m clipvault.cli.find_orphans [OPTIONS]

Examples:
    # Report orphaned namespaces under the configured submissions folder
    python -m clipvault.cli.find_orphans

    # Scan a different folder
    python -m clipvault.cli.find_orphans --path /submissions-2024

    # Verbose logging
    python -m clipvault.cli.find_orphans -v

Exit codes: 0 (no orphans), 2 (orphans found), 1 (error).
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace

import structlog
from sqlalchemy.exc import SQLAlchemyError

from clipvault.core.config import Settings, configure_logging
from clipvault.core.database import setup_db_session
from clipvault.services.exceptions import ServiceError
from clipvault.services.reconciliation import find_orphans
from clipvault.services.storage.dropbox_client import DropboxClient
from clipvault.uow import create_uow_factory

logger = structlog.get_logger()


def parse_args(argv: list[str] | None = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        description="Report backup-store submission folders that no submission row references",
        epilog="Report only: nothing is moved or deleted",
    )

    parser.add_argument(
        "--path",
        help="Backup-store folder to scan (default: DROPBOX_SUBMISSIONS_PATH)",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args(argv)


async def async_main(argv: list[str] | None = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (no orphans), 2 (orphans found), 1 (error)
    """
    args = parse_args(argv)

    settings = Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    if not settings.backup_store_enabled:
        logger.error("cli.backup_store_not_configured")
        print("Error: backup store is not configured (DROPBOX_REFRESH_TOKEN)", file=sys.stderr)
        return 1

    path = args.path or settings.dropbox_submissions_path
    logger.info("cli.started", path=path)

    backup_store = DropboxClient(
        settings.dropbox_client_id,
        settings.dropbox_client_secret,
        settings.dropbox_refresh_token,
        api_timeout=settings.api_timeout_seconds,
        token_refresh_margin=settings.token_refresh_margin_seconds,
    )
    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)

    try:
        report = await find_orphans(backup_store, uow_factory, path)
    except ServiceError as e:
        logger.error("cli.backup_store_error", error=e.message, detail=e.detail)
        print(f"\nError: {e.message}", file=sys.stderr)
        return 1
    except SQLAlchemyError as e:
        logger.error("cli.database_error", error=str(e), error_type=type(e).__name__)
        print(f"\nDatabase error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("cli.interrupted")
        print("\nScan interrupted by user", file=sys.stderr)
        return 130

    print("\n" + "=" * 60)
    print("Orphaned Upload Report")
    print("=" * 60)
    print(f"Folders scanned: {report.scanned}")
    print(f"Referenced by a submission: {report.referenced}")
    print(f"Orphaned: {len(report.orphans)}")
    for orphan in report.orphans:
        print(f"  - {orphan}")
    print("=" * 60 + "\n")

    return 2 if report.orphans else 0


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
