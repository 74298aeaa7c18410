"""Orphan detection: backup-store namespaces that no submission row references.

Orphans appear when uploads succeeded but the row write failed, or when an
attempt was cancelled after some uploads finished. This module only reports
them; nothing is deleted.
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable

import structlog

from clipvault.services.storage.dropbox_client import DropboxClient
from clipvault.uow import UnitOfWork

logger = structlog.get_logger(__name__)


@dataclass
class OrphanReport:
    """Result of comparing backup-store folders against submission rows."""

    scanned: int = 0
    referenced: int = 0
    orphans: list[str] = field(default_factory=list)


async def find_orphans(
    backup_store: DropboxClient,
    uow_factory: Callable[[], Awaitable[UnitOfWork]],
    submissions_path: str,
) -> OrphanReport:
    """List submission folders in the backup store that no row points at.

    Comparison is case-insensitive, matching how the backup store resolves paths.

    Raises:
        ServiceError: Backup store listing failed
        SQLAlchemyError: Database query failed
    """
    entries = await backup_store.list_folder(submissions_path)
    folders = [entry["path_display"] for entry in entries if entry.get(".tag") == "folder"]

    async with await uow_factory() as uow:
        referenced = await uow.submissions.list_namespaces()

    orphans = sorted(path for path in folders if path.lower() not in referenced)
    report = OrphanReport(
        scanned=len(folders), referenced=len(folders) - len(orphans), orphans=orphans
    )

    logger.info(
        "reconciliation.orphans_scanned",
        scanned=report.scanned,
        orphans=len(report.orphans),
        path=submissions_path,
    )
    return report
