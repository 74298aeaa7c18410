"""FastAPI dependencies for service access.

Services are created once in the application lifespan and stored in ``app.state``.
These dependencies hand them to routes, so tests can swap any of them by setting
``app.state`` directly.
"""

from typing import Callable

from fastapi import Request

from clipvault.core.config import Settings
from clipvault.services.mailing_list import MailingListService
from clipvault.services.moderation import ModerationService
from clipvault.services.record_store import SqlRecordStore
from clipvault.services.storage.dropbox_client import DropboxClient
from clipvault.services.submission.orchestrator import UploadOrchestrator
from clipvault.uow import UnitOfWork


def get_settings(request: Request) -> Settings:
    """Get application settings loaded at startup."""
    return request.app.state.settings


def get_uow_factory(request: Request) -> Callable[[], UnitOfWork]:
    """Get UnitOfWork factory from app state.

    Example:
        >>> @router.get("/endpoint")
        >>> async def endpoint(uow_factory=Depends(get_uow_factory)):
        ...     async with await uow_factory() as uow:
        ...         await uow.submissions.list_all()
    """
    return request.app.state.uow_factory


def get_record_store(request: Request) -> SqlRecordStore:
    return request.app.state.record_store


def get_orchestrator(request: Request) -> UploadOrchestrator:
    return request.app.state.orchestrator


def get_moderation(request: Request) -> ModerationService:
    return request.app.state.moderation


def get_mailing_list(request: Request) -> MailingListService:
    return request.app.state.mailing_list


def get_backup_store(request: Request) -> DropboxClient | None:
    """Get the backup store client, or None when it is not configured."""
    return request.app.state.backup_store
