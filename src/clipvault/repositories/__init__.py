"""Repository layer for ClipVault.

Provides data access abstractions for all domain entities.
Each repository is self-contained and receives the session from the unit of work.
"""

from clipvault.repositories.mailing_list import MailingListRepository
from clipvault.repositories.submission import SubmissionRepository

__all__ = [
    "SubmissionRepository",
    "MailingListRepository",
]
