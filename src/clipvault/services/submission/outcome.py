"""Typed result of one submission attempt."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from clipvault.services.exceptions import FailureKind


class OutcomeKind(str, Enum):
    RECORDED = "recorded"
    PARTIAL = "partial"
    TOTAL_STORAGE_FAILURE = "total_storage_failure"
    RECORD_WRITE_FAILED = "record_write_failed"
    OFFLINE = "offline"
    CANCELLED = "cancelled"


PROVIDER_LABELS = {
    "media": "our video host",
    "backup": "our backup storage",
    "signature": "signature storage",
}


@dataclass
class SubmissionOutcome:
    """What happened to an attempt, with the message shown to the submitter.

    ``reference`` is the attempt id; support uses it to find the logged locators
    when a record write failed after the files were stored.
    """

    kind: OutcomeKind
    message: str
    reference: str
    submission_id: Optional[UUID] = None
    failure_kind: Optional[FailureKind] = None
    stored: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def recorded(self) -> bool:
        return self.kind in (OutcomeKind.RECORDED, OutcomeKind.PARTIAL)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "reference": self.reference,
            "submission_id": str(self.submission_id) if self.submission_id else None,
            "failure_kind": self.failure_kind.value if self.failure_kind else None,
            "recorded": self.recorded,
            "stored": self.stored,
            "failed": self.failed,
        }

    @classmethod
    def recorded_outcome(
        cls, reference: str, submission_id: UUID, stored: list[str], failed: list[str]
    ) -> "SubmissionOutcome":
        if not failed:
            return cls(
                kind=OutcomeKind.RECORDED,
                message="Thank you! Your submission has been received.",
                reference=reference,
                submission_id=submission_id,
                stored=stored,
            )

        stored_labels = " and ".join(PROVIDER_LABELS.get(slot, slot) for slot in stored)
        message = (
            f"Your submission has been received and your video is safely stored with "
            f"{stored_labels}."
        )
        if any(slot != "signature" for slot in failed):
            message += " Our team will reconcile the remaining copy."
        else:
            message += " Your signature could not be saved; our team will follow up."
        return cls(
            kind=OutcomeKind.PARTIAL,
            message=message,
            reference=reference,
            submission_id=submission_id,
            failure_kind=FailureKind.PARTIAL_STORAGE,
            stored=stored,
            failed=failed,
        )

    @classmethod
    def total_failure(cls, reference: str, failed: list[str]) -> "SubmissionOutcome":
        return cls(
            kind=OutcomeKind.TOTAL_STORAGE_FAILURE,
            message="We couldn't upload your video. Please check your connection and submit again.",
            reference=reference,
            failure_kind=FailureKind.TOTAL_STORAGE,
            failed=failed,
        )

    @classmethod
    def record_write_failed(
        cls, reference: str, stored: list[str], failed: list[str]
    ) -> "SubmissionOutcome":
        return cls(
            kind=OutcomeKind.RECORD_WRITE_FAILED,
            message=(
                "Your file is safely stored, but we couldn't save your details. "
                f"Please contact support with this reference: {reference}"
            ),
            reference=reference,
            failure_kind=FailureKind.RECORD_WRITE,
            stored=stored,
            failed=failed,
        )

    @classmethod
    def offline(cls, reference: str) -> "SubmissionOutcome":
        return cls(
            kind=OutcomeKind.OFFLINE,
            message="You appear to be offline. Please reconnect and try again.",
            reference=reference,
            failure_kind=FailureKind.OFFLINE,
        )

    @classmethod
    def cancelled(cls, reference: str) -> "SubmissionOutcome":
        return cls(
            kind=OutcomeKind.CANCELLED,
            message="The upload was cancelled.",
            reference=reference,
            failure_kind=FailureKind.TRANSPORT,
        )
