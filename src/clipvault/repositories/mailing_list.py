"""MailingListEntry repository for ClipVault.

Provides data access methods for the mailing list with case-insensitive email lookup.
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from clipvault.models.mailing_list import MailingListEntry


class MailingListRepository:
    """Repository for MailingListEntry entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_by_email(self, email: str) -> MailingListEntry | None:
        """Retrieve entry by email (case-insensitive).

        Uses LOWER() comparison so "Jane@X.com" and "jane@x.com" are the same subscriber.

        Args:
            email: Subscriber email address

        Returns:
            MailingListEntry if found, None otherwise
        """
        result = await self.session.execute(
            select(MailingListEntry).where(
                func.lower(MailingListEntry.email) == func.lower(email)  # type: ignore[arg-type]
            )
        )
        return result.scalar_one_or_none()

    async def add(self, entry: MailingListEntry) -> MailingListEntry:
        """Persist new entry to database.

        Args:
            entry: MailingListEntry entity to persist

        Returns:
            Persisted entry with generated ID
        """
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def list_all(self) -> list[MailingListEntry]:
        """Retrieve all entries, oldest first."""
        result = await self.session.execute(
            select(MailingListEntry).order_by(MailingListEntry.added_at.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def count(self) -> int:
        """Count mailing-list entries."""
        result = await self.session.execute(select(func.count(MailingListEntry.id)))  # type: ignore[arg-type]
        return result.scalar() or 0
