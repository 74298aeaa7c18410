"""Submission repository for ClipVault.

Provides data access methods for Submission entities.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from clipvault.models.submission import Submission, SubmissionStatus


class SubmissionRepository:
    """Repository for Submission entities.

    Methods:
    - get_by_id: Retrieve submission by UUID
    - add: Persist new submission
    - list_all: All submissions, newest first
    - update_fields: Apply a partial update to one submission
    - delete_by_id: Remove a submission permanently
    - count_by_status: Submission totals grouped by status
    - list_namespaces: Backup-store namespaces referenced by any submission
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_by_id(self, submission_id: UUID) -> Submission | None:
        """Retrieve submission by UUID.

        Args:
            submission_id: Submission's unique identifier

        Returns:
            Submission if found, None otherwise
        """
        result = await self.session.execute(
            select(Submission).where(Submission.id == submission_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def add(self, submission: Submission) -> Submission:
        """Persist new submission to database.

        Args:
            submission: Submission entity to persist

        Returns:
            Persisted submission (id is assigned before insert and never changes)
        """
        self.session.add(submission)
        await self.session.flush()
        return submission

    async def list_all(self, limit: int | None = None, offset: int = 0) -> list[Submission]:
        """Retrieve submissions ordered by submission time (newest first).

        Args:
            limit: Optional page size (default: all rows)
            offset: Number of rows to skip (default: 0)

        Returns:
            List of submissions
        """
        query = (
            select(Submission)
            .order_by(Submission.submitted_at.desc())  # type: ignore[attr-defined]
            .offset(offset)
        )
        if limit is not None:
            query = query.limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def update_fields(self, submission_id: UUID, fields: dict[str, Any]) -> Submission | None:
        """Apply a partial update to a submission.

        Unknown field names are rejected so a typo cannot silently drop an update.

        Args:
            submission_id: Submission's unique identifier
            fields: Mapping of column name to new value

        Returns:
            Updated submission, or None if it does not exist

        Raises:
            ValueError: If a field name is not a Submission column
        """
        unknown = set(fields) - set(Submission.model_fields)
        if unknown:
            raise ValueError(f"Unknown submission fields: {', '.join(sorted(unknown))}")

        submission = await self.get_by_id(submission_id)
        if submission is None:
            return None

        for name, value in fields.items():
            setattr(submission, name, value)
        self.session.add(submission)
        await self.session.flush()
        await self.session.refresh(submission)
        return submission

    async def delete_by_id(self, submission_id: UUID) -> bool:
        """Delete a submission permanently.

        Args:
            submission_id: Submission's unique identifier

        Returns:
            True if a row was deleted, False if it did not exist
        """
        result = await self.session.execute(
            delete(Submission).where(Submission.id == submission_id)  # type: ignore[arg-type]
        )
        await self.session.flush()
        return result.rowcount > 0  # type: ignore[attr-defined]

    async def count_by_status(self) -> dict[SubmissionStatus, int]:
        """Count submissions per moderation status.

        Returns:
            Mapping with an entry for every status (zero when absent)
        """
        result = await self.session.execute(
            select(Submission.status, func.count(Submission.id)).group_by(Submission.status)  # type: ignore[arg-type]
        )
        counts = {status: 0 for status in SubmissionStatus}
        for status, count in result.all():
            counts[SubmissionStatus(status)] = count
        return counts

    async def list_namespaces(self) -> set[str]:
        """Retrieve every backup-store namespace referenced by a submission.

        Used by the orphan report to find uploads that no row points at.

        Returns:
            Set of namespace paths (lower-cased, since the backup store is case-insensitive)
        """
        result = await self.session.execute(
            select(Submission.namespace_path).where(Submission.namespace_path.is_not(None))  # type: ignore[union-attr]
        )
        return {path.lower() for path in result.scalars().all()}
