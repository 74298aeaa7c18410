"""Submission entity - a submitted video clip with moderation status tracking."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubmissionStatus(str, Enum):
    """Moderation status of a submission."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RelocationStatus(str, Enum):
    """State of the move into the approved area of the backup store."""

    NOT_REQUESTED = "not_requested"
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"
    NOT_APPLICABLE = "not_applicable"


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid submission state transition."""

    pass


class Submission(SQLModel, table=True):
    """Submission holds the submitter's details, legal flags and storage locators."""

    __tablename__ = "submissions"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)

    # Submitter
    first_name: str = Field(max_length=255)
    last_name: str = Field(max_length=255)
    email: str = Field(max_length=320, index=True)
    location: Optional[str] = Field(default=None, max_length=500)
    description: Optional[str] = Field(default=None)

    # Attribution
    is_own_recording: bool = Field(default=True)
    recorder_name: Optional[str] = Field(default=None, max_length=255)
    want_credit: bool = Field(default=False)
    credit_platform: Optional[str] = Field(default=None, max_length=100)
    credit_username: Optional[str] = Field(default=None, max_length=255)
    payout_email: Optional[str] = Field(default=None, max_length=320)

    # Legal (captured once at submission time)
    agree_terms: bool = Field(default=False)
    no_other_submission: bool = Field(default=False)
    keep_in_touch: bool = Field(default=False)

    # Storage locators - any subset may be populated
    namespace_path: Optional[str] = Field(default=None, max_length=1024)
    media_locator: Optional[str] = Field(default=None, max_length=512)
    media_url: Optional[str] = Field(default=None, max_length=2048)
    backup_file_id: Optional[str] = Field(default=None, max_length=255)
    backup_video_path: Optional[str] = Field(default=None, max_length=1024)
    signature_path: Optional[str] = Field(default=None, max_length=1024)
    signature_bucket_path: Optional[str] = Field(default=None, max_length=1024)
    signature_url: Optional[str] = Field(default=None, max_length=2048)

    # Moderation
    status: SubmissionStatus = Field(default=SubmissionStatus.PENDING, index=True)
    admin_notes: Optional[str] = Field(default=None)
    submitted_at: datetime = Field(
        default_factory=utcnow, index=True, sa_type=DateTime(timezone=True)
    )
    reviewed_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))

    # Relocation into the approved area
    relocation_status: RelocationStatus = Field(default=RelocationStatus.NOT_REQUESTED)
    approved_video_path: Optional[str] = Field(default=None, max_length=1024)
    relocation_error: Optional[str] = Field(default=None, max_length=1000)

    @property
    def storage_complete(self) -> bool:
        """True when at least one durable copy of the video is referenced."""
        return bool(self.media_locator or self.backup_video_path)

    @property
    def is_terminal(self) -> bool:
        return self.status in (SubmissionStatus.APPROVED, SubmissionStatus.REJECTED)

    def mark_approved(self) -> bool:
        """Transition from pending to approved.

        Returns:
            True if the status changed, False if the submission was already approved

        Raises:
            InvalidStateTransition: If the submission has been rejected
        """
        if self.status == SubmissionStatus.APPROVED:
            return False
        if self.status != SubmissionStatus.PENDING:
            raise InvalidStateTransition(
                f"Cannot approve from {self.status.value}. Submission must be pending."
            )
        self.status = SubmissionStatus.APPROVED
        self.reviewed_at = utcnow()
        return True

    def mark_rejected(self, reason: str | None = None) -> bool:
        """Transition from pending to rejected, recording the reason in admin notes.

        Returns:
            True if the status changed, False if the submission was already rejected

        Raises:
            InvalidStateTransition: If the submission has been approved
        """
        if self.status == SubmissionStatus.REJECTED:
            if reason:
                self.admin_notes = reason
            return False
        if self.status != SubmissionStatus.PENDING:
            raise InvalidStateTransition(
                f"Cannot reject from {self.status.value}. Submission must be pending."
            )
        self.status = SubmissionStatus.REJECTED
        self.admin_notes = reason or "No reason provided"
        self.reviewed_at = utcnow()
        return True
