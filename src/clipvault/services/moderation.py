"""Moderation: approve, reject, delete and annotate submissions.

Approval also relocates the backup copy of the video into the approved area.
The status change and the relocation are reported separately: a submission can
be approved while its relocation failed, which is a partial success.
"""

import posixpath
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar
from uuid import UUID

import structlog

from clipvault.models.submission import (
    InvalidStateTransition,
    RelocationStatus,
    Submission,
    SubmissionStatus,
)
from clipvault.services.exceptions import (
    FailureKind,
    ServiceError,
    SubmissionNotFoundError,
    classify_failure,
)
from clipvault.services.record_store import SqlRecordStore
from clipvault.services.storage.base import ObjectMover

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def clone_submission(submission: Submission) -> Submission:
    return Submission.model_validate(submission.model_dump())


class SubmissionBoard:
    """In-memory admin projection of submissions, keyed by id."""

    def __init__(self, submissions: Iterable[Submission] = ()):
        self._rows: dict[UUID, Submission] = {}
        self.load(submissions)

    def load(self, submissions: Iterable[Submission]) -> None:
        self._rows = {submission.id: clone_submission(submission) for submission in submissions}

    def get(self, submission_id: UUID) -> Optional[Submission]:
        return self._rows.get(submission_id)

    def put(self, submission: Submission) -> None:
        self._rows[submission.id] = submission

    def remove(self, submission_id: UUID) -> Optional[Submission]:
        return self._rows.pop(submission_id, None)

    def all(self) -> list[Submission]:
        return sorted(self._rows.values(), key=lambda s: s.submitted_at, reverse=True)

    def __contains__(self, submission_id: object) -> bool:
        return submission_id in self._rows

    def __len__(self) -> int:
        return len(self._rows)


class OptimisticUpdate:
    """Apply a change to the board, await persistence, revert on error.

    Example:
        update = OptimisticUpdate(board, submission_id, fields={"admin_notes": "ok"})
        await update.run(lambda: record_store.update(submission_id, {"admin_notes": "ok"}))
    """

    def __init__(
        self,
        board: SubmissionBoard,
        submission_id: UUID,
        *,
        fields: Optional[dict[str, Any]] = None,
        remove: bool = False,
    ):
        self.board = board
        self.submission_id = submission_id
        self.fields = fields or {}
        self.remove = remove
        self._previous: Optional[Submission] = None
        self.applied = False

    def apply(self) -> None:
        self._previous = self.board.get(self.submission_id)
        if self._previous is None:
            return

        if self.remove:
            self.board.remove(self.submission_id)
        else:
            updated = clone_submission(self._previous)
            for name, value in self.fields.items():
                setattr(updated, name, value)
            self.board.put(updated)
        self.applied = True

    def revert(self) -> None:
        if not self.applied or self._previous is None:
            return
        self.board.put(self._previous)
        self.applied = False
        logger.info("moderation.board.reverted", submission_id=str(self.submission_id))

    async def run(self, persist: Callable[[], Awaitable[T]]) -> T:
        self.apply()
        try:
            return await persist()
        except BaseException:
            self.revert()
            raise


class ModerationAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    DELETE = "delete"
    ANNOTATE = "annotate"


class ModerationResultKind(str, Enum):
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    REQUIRES_CONFIRMATION = "requires_confirmation"
    FAILED = "failed"


@dataclass
class ModerationResult:
    """Outcome of one moderation action, with the message shown to the moderator."""

    kind: ModerationResultKind
    action: ModerationAction
    submission_id: UUID
    message: str
    failure_kind: Optional[FailureKind] = None
    submission: Optional[Submission] = None
    relocation_error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.kind in (ModerationResultKind.SUCCESS, ModerationResultKind.PARTIAL_SUCCESS)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "action": self.action.value,
            "submission_id": str(self.submission_id),
            "message": self.message,
            "failure_kind": self.failure_kind.value if self.failure_kind else None,
            "relocation_error": self.relocation_error,
            "submission": self.submission.model_dump(mode="json") if self.submission else None,
        }


class ModerationService:
    """Moderation commands against the record store and the backup store."""

    def __init__(
        self,
        record_store: SqlRecordStore,
        mover: Optional[ObjectMover] = None,
        board: Optional[SubmissionBoard] = None,
        approved_path: str = "/Approved Videos",
    ):
        self.record_store = record_store
        self.mover = mover
        self.board = board if board is not None else SubmissionBoard()
        self.approved_path = approved_path.rstrip("/")

    async def refresh(self) -> list[Submission]:
        """Reload the board from the record store."""
        submissions = await self.record_store.query_all()
        self.board.load(submissions)
        return self.board.all()

    def approved_destination(self, submission: Submission) -> Optional[str]:
        """``{approved_path}/{namespace name}/{file name}``, derived from the record only."""
        if not submission.backup_video_path:
            return None
        source = submission.backup_video_path
        namespace = posixpath.basename(posixpath.dirname(source))
        filename = posixpath.basename(source)
        if namespace:
            return f"{self.approved_path}/{namespace}/{filename}"
        return f"{self.approved_path}/{filename}"

    async def approve(self, submission_id: UUID) -> ModerationResult:
        """Approve and relocate.

        Approving an already-approved submission is a no-op when its relocation is
        done, and re-attempts the move to the same destination when it is pending
        or failed.
        """
        action = ModerationAction.APPROVE
        log = logger.bind(submission_id=str(submission_id))

        try:
            current = await self.record_store.get(submission_id)
        except ServiceError as e:
            return self._failed(action, submission_id, e)

        candidate = clone_submission(current)
        try:
            changed = candidate.mark_approved()
        except InvalidStateTransition as e:
            return self._invalid(action, submission_id, e)

        destination = self.approved_destination(candidate)
        needs_relocation = destination is not None and self.mover is not None

        if changed:
            fields: dict[str, Any] = {"status": candidate.status, "reviewed_at": candidate.reviewed_at}
            if needs_relocation:
                fields["relocation_status"] = RelocationStatus.PENDING
                fields["approved_video_path"] = destination
            else:
                fields["relocation_status"] = RelocationStatus.NOT_APPLICABLE
            try:
                await OptimisticUpdate(self.board, submission_id, fields=fields).run(
                    lambda: self.record_store.update(submission_id, fields)
                )
            except ServiceError as e:
                return self._failed(action, submission_id, e)
            for name, value in fields.items():
                setattr(candidate, name, value)
            log.info("moderation.approve.status_updated")

        if not needs_relocation or candidate.relocation_status in (
            RelocationStatus.DONE,
            RelocationStatus.NOT_APPLICABLE,
        ):
            message = "Submission approved." if changed else "Submission was already approved."
            return ModerationResult(
                ModerationResultKind.SUCCESS, action, submission_id, message, submission=candidate
            )

        return await self._relocate(candidate, destination)  # type: ignore[arg-type]

    async def _relocate(self, submission: Submission, destination: str) -> ModerationResult:
        action = ModerationAction.APPROVE
        log = logger.bind(submission_id=str(submission.id))
        source = submission.backup_video_path

        try:
            await self.mover.move(source, destination)  # type: ignore[union-attr,arg-type]
        except ServiceError as e:
            log.warning(
                "moderation.approve.relocation_failed",
                source=source,
                destination=destination,
                error=e.message,
                detail=e.detail,
            )
            fields = {"relocation_status": RelocationStatus.FAILED, "relocation_error": e.message[:1000]}
            await self._save_relocation(submission, fields)
            return ModerationResult(
                ModerationResultKind.PARTIAL_SUCCESS,
                action,
                submission.id,
                "Submission approved, but the video could not be moved to the approved folder. "
                "Approve again to retry the move.",
                failure_kind=classify_failure(e),
                submission=submission,
                relocation_error=e.message,
            )

        log.info("moderation.approve.relocated", source=source, destination=destination)
        fields = {
            "relocation_status": RelocationStatus.DONE,
            "relocation_error": None,
            "approved_video_path": destination,
        }
        if not await self._save_relocation(submission, fields):
            return ModerationResult(
                ModerationResultKind.PARTIAL_SUCCESS,
                action,
                submission.id,
                "Submission approved and the video was moved, but the move could not be recorded.",
                failure_kind=FailureKind.TRANSPORT,
                submission=submission,
            )
        return ModerationResult(
            ModerationResultKind.SUCCESS,
            action,
            submission.id,
            "Submission approved and moved to the approved folder.",
            submission=submission,
        )

    async def _save_relocation(self, submission: Submission, fields: dict[str, Any]) -> bool:
        try:
            await OptimisticUpdate(self.board, submission.id, fields=fields).run(
                lambda: self.record_store.update(submission.id, fields)
            )
        except ServiceError as e:
            logger.error(
                "moderation.approve.relocation_status_not_saved",
                submission_id=str(submission.id),
                fields={k: str(v) for k, v in fields.items()},
                error=e.message,
            )
            return False
        for name, value in fields.items():
            setattr(submission, name, value)
        return True

    async def reject(self, submission_id: UUID, note: str | None = None) -> ModerationResult:
        """Reject, recording the reason in the admin note (default "No reason provided")."""
        action = ModerationAction.REJECT

        try:
            current = await self.record_store.get(submission_id)
        except ServiceError as e:
            return self._failed(action, submission_id, e)

        candidate = clone_submission(current)
        try:
            changed = candidate.mark_rejected(note)
        except InvalidStateTransition as e:
            return self._invalid(action, submission_id, e)

        if not changed and not note:
            return ModerationResult(
                ModerationResultKind.SUCCESS,
                action,
                submission_id,
                "Submission was already rejected.",
                submission=candidate,
            )

        fields = {
            "status": candidate.status,
            "admin_notes": candidate.admin_notes,
            "reviewed_at": candidate.reviewed_at,
        }
        try:
            await OptimisticUpdate(self.board, submission_id, fields=fields).run(
                lambda: self.record_store.update(submission_id, fields)
            )
        except ServiceError as e:
            return self._failed(action, submission_id, e)

        logger.info("moderation.reject.completed", submission_id=str(submission_id), changed=changed)
        return ModerationResult(
            ModerationResultKind.SUCCESS, action, submission_id, "Submission rejected.", submission=candidate
        )

    async def delete(self, submission_id: UUID, confirmed: bool = False) -> ModerationResult:
        """Delete permanently. Nothing happens unless ``confirmed`` is True."""
        action = ModerationAction.DELETE

        if not confirmed:
            return ModerationResult(
                ModerationResultKind.REQUIRES_CONFIRMATION,
                action,
                submission_id,
                "Deleting a submission cannot be undone. Confirm to delete it.",
            )

        try:
            current = await self.record_store.get(submission_id)
            await OptimisticUpdate(self.board, submission_id, remove=True).run(
                lambda: self.record_store.delete(submission_id)
            )
        except ServiceError as e:
            return self._failed(action, submission_id, e)

        # Backing media is kept; the locators are logged for manual clean-up
        logger.info(
            "moderation.delete.completed",
            submission_id=str(submission_id),
            namespace=current.namespace_path,
            media_locator=current.media_locator,
            backup_video_path=current.approved_video_path or current.backup_video_path,
        )
        return ModerationResult(
            ModerationResultKind.SUCCESS, action, submission_id, "Submission deleted."
        )

    async def annotate(self, submission_id: UUID, note: str) -> ModerationResult:
        """Replace the admin note; status is unchanged."""
        action = ModerationAction.ANNOTATE
        fields = {"admin_notes": note}

        try:
            await OptimisticUpdate(self.board, submission_id, fields=fields).run(
                lambda: self.record_store.update(submission_id, fields)
            )
            updated = await self.record_store.get(submission_id)
        except ServiceError as e:
            return self._failed(action, submission_id, e)

        return ModerationResult(
            ModerationResultKind.SUCCESS, action, submission_id, "Note saved.", submission=updated
        )

    def _failed(
        self, action: ModerationAction, submission_id: UUID, error: ServiceError
    ) -> ModerationResult:
        if isinstance(error, SubmissionNotFoundError):
            self.board.remove(submission_id)
            kind = FailureKind.NOT_FOUND
            message = f"Submission {submission_id} no longer exists. Refresh the list."
        else:
            kind = classify_failure(error)
            message = (
                f"Could not {action.value} submission {submission_id}: "
                "a network or database error occurred. Please try again."
            )

        logger.warning(
            "moderation.action.failed",
            action=action.value,
            submission_id=str(submission_id),
            failure_kind=kind.value,
            error=error.message,
        )
        return ModerationResult(
            ModerationResultKind.FAILED, action, submission_id, message, failure_kind=kind
        )

    def _invalid(
        self, action: ModerationAction, submission_id: UUID, error: InvalidStateTransition
    ) -> ModerationResult:
        logger.info(
            "moderation.action.invalid_transition",
            action=action.value,
            submission_id=str(submission_id),
            error=str(error),
        )
        return ModerationResult(
            ModerationResultKind.FAILED,
            action,
            submission_id,
            str(error),
            failure_kind=FailureKind.MODERATION,
        )
