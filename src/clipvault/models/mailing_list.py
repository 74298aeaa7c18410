"""MailingListEntry entity - append-only list of people who asked to stay in touch."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Index, text
from sqlmodel import Field, SQLModel

from clipvault.models.submission import utcnow


class MailingListSource(str, Enum):
    """Where the entry was collected."""

    USER_INFO = "user_info"
    SUBMISSION = "submission"


class MailingListEntry(SQLModel, table=True):
    """One subscriber, unique by email regardless of case."""

    __tablename__ = "mailing_list_entries"  # type: ignore[assignment]
    __table_args__ = (
        Index("uq_mailing_list_entries_email_lower", text("lower(email)"), unique=True),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    first_name: str = Field(max_length=255)
    last_name: str = Field(max_length=255)
    email: str = Field(max_length=320, index=True)
    source: MailingListSource = Field(default=MailingListSource.USER_INFO)
    keep_in_touch: bool = Field(default=True)
    added_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
