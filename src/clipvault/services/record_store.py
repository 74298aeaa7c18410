"""Record store: submission rows in the database plus the object bucket's public URLs."""

from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError

from clipvault.models.submission import Submission
from clipvault.services.exceptions import RecordStoreError, SubmissionNotFoundError
from clipvault.services.storage.base import PublicUrlResolver
from clipvault.uow import UnitOfWork

logger = structlog.get_logger(__name__)

UowFactory = Callable[[], Awaitable[UnitOfWork]]


class SqlRecordStore:
    """Typed insert/update/delete/query interface over the unit of work.

    Every database failure surfaces as ``RecordStoreError`` (transient); a missing
    row surfaces as ``SubmissionNotFoundError`` so callers can tell them apart.
    """

    def __init__(self, uow_factory: UowFactory, bucket: Optional[PublicUrlResolver] = None):
        self.uow_factory = uow_factory
        self.bucket = bucket

    async def insert(self, submission: Submission) -> UUID:
        """Insert a new submission row.

        Returns:
            The submission id (assigned before insert)

        Raises:
            RecordStoreError: Write failed
        """
        try:
            async with await self.uow_factory() as uow:
                await uow.submissions.add(submission)
        except SQLAlchemyError as e:
            logger.error(
                "record_store.insert_failed", submission_id=str(submission.id), error=str(e)
            )
            raise RecordStoreError("Could not save the submission", detail=str(e)) from e

        logger.info("record_store.inserted", submission_id=str(submission.id))
        return submission.id

    async def update(self, submission_id: UUID, fields: dict[str, Any]) -> bool:
        """Apply a partial update.

        Returns:
            True once the row is updated

        Raises:
            SubmissionNotFoundError: Row does not exist
            RecordStoreError: Write failed
        """
        try:
            async with await self.uow_factory() as uow:
                updated = await uow.submissions.update_fields(submission_id, fields)
        except SQLAlchemyError as e:
            logger.error(
                "record_store.update_failed", submission_id=str(submission_id), error=str(e)
            )
            raise RecordStoreError("Could not update the submission", detail=str(e)) from e

        if updated is None:
            raise SubmissionNotFoundError(f"Submission {submission_id} not found")
        return True

    async def delete(self, submission_id: UUID) -> bool:
        """Delete a row permanently.

        Raises:
            SubmissionNotFoundError: Row does not exist
            RecordStoreError: Write failed
        """
        try:
            async with await self.uow_factory() as uow:
                deleted = await uow.submissions.delete_by_id(submission_id)
        except SQLAlchemyError as e:
            logger.error(
                "record_store.delete_failed", submission_id=str(submission_id), error=str(e)
            )
            raise RecordStoreError("Could not delete the submission", detail=str(e)) from e

        if not deleted:
            raise SubmissionNotFoundError(f"Submission {submission_id} not found")
        return True

    async def get(self, submission_id: UUID) -> Submission:
        """Fetch one row.

        Raises:
            SubmissionNotFoundError: Row does not exist
            RecordStoreError: Read failed
        """
        try:
            async with await self.uow_factory() as uow:
                submission = await uow.submissions.get_by_id(submission_id)
        except SQLAlchemyError as e:
            raise RecordStoreError("Could not load the submission", detail=str(e)) from e

        if submission is None:
            raise SubmissionNotFoundError(f"Submission {submission_id} not found")
        return submission

    async def exists(self, submission_id: UUID) -> bool:
        try:
            await self.get(submission_id)
        except SubmissionNotFoundError:
            return False
        return True

    async def query_all(self) -> list[Submission]:
        """All rows, newest first."""
        try:
            async with await self.uow_factory() as uow:
                return await uow.submissions.list_all()
        except SQLAlchemyError as e:
            raise RecordStoreError("Could not load submissions", detail=str(e)) from e

    def get_public_url(self, object_path: str) -> str | None:
        """Public URL of an object in the record-store bucket, if one is configured."""
        if self.bucket is None:
            return None
        return self.bucket.get_public_url(object_path)
