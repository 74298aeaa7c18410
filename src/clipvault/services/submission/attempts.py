"""In-flight upload attempts and the registry clients poll."""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID, uuid4

import structlog

from clipvault.models.submission import utcnow
from clipvault.services.exceptions import AttemptNotFoundError
from clipvault.services.storage.base import MediaFile, UploadResult
from clipvault.services.submission.form import SubmissionForm
from clipvault.services.submission.outcome import SubmissionOutcome
from clipvault.services.submission.tracker import SubmissionStatusTracker

logger = structlog.get_logger(__name__)


@dataclass
class UploadAttempt:
    """Working copy of one submission until its row is written.

    The submission id and namespace are fixed when the attempt is created, so
    every retry targets the same folder and the same row.
    """

    form: SubmissionForm
    video: MediaFile
    signature: Optional[MediaFile]
    namespace_path: str
    id: str = field(default_factory=lambda: uuid4().hex)
    submission_id: UUID = field(default_factory=uuid4)
    submitted_at: datetime = field(default_factory=utcnow)
    tracker: SubmissionStatusTracker = field(default_factory=SubmissionStatusTracker)

    # Slot results: "media", "backup", and one signature result per signature target
    video_results: dict[str, UploadResult] = field(default_factory=dict)
    signature_results: dict[str, UploadResult] = field(default_factory=dict)
    provision_attempted: set[str] = field(default_factory=set)
    companion_written: set[str] = field(default_factory=set)
    recorded: bool = False

    outcome: Optional[SubmissionOutcome] = None
    task: Optional[asyncio.Task] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    created_at: float = field(default_factory=time.monotonic)

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()

    def snapshot(self) -> dict:
        return {
            "attempt_id": self.id,
            "submission_id": str(self.submission_id),
            "namespace": self.namespace_path,
            "running": self.running,
            "slots": self.tracker.snapshot(),
            "navigation": self.tracker.navigation_state(),
            "outcome": self.outcome.to_dict() if self.outcome else None,
        }


class AttemptRegistry:
    """Attempts by id, evicted after a time-to-live unless still running."""

    def __init__(self, ttl_seconds: int = 3600, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._attempts: dict[str, UploadAttempt] = {}

    def add(self, attempt: UploadAttempt) -> None:
        self.evict_expired()
        self._attempts[attempt.id] = attempt

    def get(self, attempt_id: str) -> UploadAttempt:
        attempt = self._attempts.get(attempt_id)
        if attempt is None:
            raise AttemptNotFoundError(f"Upload attempt {attempt_id} not found or expired")
        return attempt

    def evict_expired(self) -> int:
        cutoff = self._clock() - self.ttl_seconds
        expired = [
            attempt_id
            for attempt_id, attempt in self._attempts.items()
            if attempt.created_at < cutoff and not attempt.running
        ]
        for attempt_id in expired:
            del self._attempts[attempt_id]
        if expired:
            logger.debug("submission.attempts.evicted", count=len(expired))
        return len(expired)

    def running_tasks(self) -> list[asyncio.Task]:
        return [attempt.task for attempt in self._attempts.values() if attempt.running]  # type: ignore[misc]

    def __len__(self) -> int:
        return len(self._attempts)
