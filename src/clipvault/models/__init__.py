"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
for Alembic autogenerate support.
"""

from clipvault.models.mailing_list import MailingListEntry, MailingListSource
from clipvault.models.submission import (
    InvalidStateTransition,
    RelocationStatus,
    Submission,
    SubmissionStatus,
)

__all__ = [
    "Submission",
    "SubmissionStatus",
    "RelocationStatus",
    "InvalidStateTransition",
    "MailingListEntry",
    "MailingListSource",
]
