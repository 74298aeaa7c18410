"""Upload orchestrator: drives one submission through every storage provider.

Pipeline for an attempt:
1. Pre-flight connectivity probe (offline fails fast, nothing is uploaded)
2. Namespace provisioning in providers that need explicit folders (non-fatal)
3. Video to media store and backup store, signature to its targets, all concurrently
4. Join: if no video copy exists the attempt is a total failure and no row is written;
   otherwise the row is inserted while the companion text file is written best-effort
5. Confirmation notice and mailing-list enrolment as detached, non-fatal side effects

Every failure resolves to a ``SubmissionOutcome``; provider exceptions never reach callers.
"""

import asyncio
from typing import Any, Coroutine, Optional

import structlog

from clipvault.models.mailing_list import MailingListSource
from clipvault.models.submission import RelocationStatus, Submission, SubmissionStatus, utcnow
from clipvault.services.exceptions import (
    FailureKind,
    InvalidSlotTransition,
    OfflineError,
    ServiceError,
    classify_failure,
)
from clipvault.services.mailing_list import MailingListService
from clipvault.services.notifications import ConfirmationNotifier, LogNotifier
from clipvault.services.record_store import SqlRecordStore
from clipvault.services.storage.base import FolderProvisioner, MediaFile, MediaUploader
from clipvault.services.storage.probe import ConnectivityProbe
from clipvault.services.submission.attempts import AttemptRegistry, UploadAttempt
from clipvault.services.submission.companion import companion_file, decode_data_uri, namespace_name
from clipvault.services.submission.form import SubmissionForm
from clipvault.services.submission.outcome import SubmissionOutcome
from clipvault.services.submission.tracker import SlotName, SlotStatus, SubmissionStatusTracker

logger = structlog.get_logger(__name__)

VIDEO_SLOTS = (SlotName.MEDIA, SlotName.BACKUP)


def _begin(tracker: SubmissionStatusTracker, slot: SlotName) -> None:
    status = tracker.status(slot)
    if status == SlotStatus.IDLE:
        tracker.start(slot)
    elif status == SlotStatus.ERROR:
        tracker.reset(slot)


class UploadOrchestrator:
    """Coordinates uploads across the configured providers for each attempt.

    Providers are passed by role and inspected by capability: any role may be
    None when that provider is not configured.
    """

    def __init__(
        self,
        record_store: SqlRecordStore,
        *,
        media_store: Optional[MediaUploader] = None,
        backup_store: Optional[MediaUploader] = None,
        record_bucket: Optional[MediaUploader] = None,
        probe: Optional[ConnectivityProbe] = None,
        notifier: Optional[ConfirmationNotifier] = None,
        mailing_list: Optional[MailingListService] = None,
        registry: Optional[AttemptRegistry] = None,
        submissions_path: str = "/submissions",
    ):
        self.record_store = record_store
        self.media_store = media_store
        self.backup_store = backup_store
        self.record_bucket = record_bucket
        self.probe = probe
        self.notifier = notifier or LogNotifier()
        self.mailing_list = mailing_list
        self.registry = registry or AttemptRegistry()
        self.submissions_path = submissions_path.rstrip("/")

        self.video_targets: dict[SlotName, MediaUploader] = {}
        if media_store is not None:
            self.video_targets[SlotName.MEDIA] = media_store
        if backup_store is not None:
            self.video_targets[SlotName.BACKUP] = backup_store

        # Signature and companion file go to every object store that keeps per-submission files
        self.file_targets: list[MediaUploader] = [
            target for target in (backup_store, record_bucket) if target is not None
        ]

        self._background: set[asyncio.Task] = set()

    # Attempt lifecycle

    def create_attempt(
        self, form: SubmissionForm, video: MediaFile, signature_data_uri: str | None
    ) -> UploadAttempt:
        """Create and register an attempt.

        Raises:
            ValueError: Signature is not a decodable data URI
        """
        signature = decode_data_uri(signature_data_uri) if signature_data_uri else None
        submitted_at = utcnow()
        namespace = namespace_name(form.first_name, form.last_name, submitted_at)
        attempt = UploadAttempt(
            form=form,
            video=video,
            signature=signature,
            namespace_path=f"{self.submissions_path}/{namespace}",
            submitted_at=submitted_at,
        )
        self.registry.add(attempt)
        return attempt

    async def submit(
        self, form: SubmissionForm, video: MediaFile, signature_data_uri: str | None
    ) -> SubmissionOutcome:
        """Run the whole pipeline and wait for its outcome."""
        attempt = self.create_attempt(form, video, signature_data_uri)
        return await self._run_guarded(attempt, preflight=True)

    async def start(
        self, form: SubmissionForm, video: MediaFile, signature_data_uri: str | None
    ) -> UploadAttempt:
        """Run the pre-flight probe, then the pipeline as a background task.

        Raises:
            OfflineError: Connectivity probe failed (nothing was uploaded)
            ValueError: Signature is not a decodable data URI
        """
        if self.probe is not None:
            await self.probe.check()
        attempt = self.create_attempt(form, video, signature_data_uri)
        attempt.task = asyncio.create_task(self._run_guarded(attempt, preflight=False))
        return attempt

    def cancel(self, attempt_id: str) -> bool:
        """Best-effort cancellation of an in-flight attempt.

        Returns:
            True if a running task was cancelled, False if nothing was running
        """
        attempt = self.registry.get(attempt_id)
        if not attempt.running:
            return False
        attempt.task.cancel()  # type: ignore[union-attr]
        logger.info("submission.attempt.cancel_requested", attempt_id=attempt.id)
        return True

    async def drain(self) -> None:
        """Wait for detached side effects (confirmation, mailing list) to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # Retry

    def check_retryable(self, attempt: UploadAttempt, slot: SlotName) -> None:
        """Raise InvalidSlotTransition unless ``slot`` can be retried now."""
        if attempt.running and attempt.task is not asyncio.current_task():
            raise InvalidSlotTransition("Attempt is still running")

        status = attempt.tracker.status(slot)
        if slot == SlotName.RECORD:
            if attempt.recorded:
                raise InvalidSlotTransition("Submission is already recorded")
            if not attempt.video_results:
                raise InvalidSlotTransition("Nothing to record: no copy of the video is stored")
            if status not in (SlotStatus.ERROR, SlotStatus.IDLE):
                raise InvalidSlotTransition(f"Cannot retry record: slot is {status.value}")
            return

        if slot in VIDEO_SLOTS and slot not in self.video_targets:
            raise InvalidSlotTransition(f"No provider configured for {slot.value}")
        if slot == SlotName.SIGNATURE and not (attempt.signature and self.file_targets):
            raise InvalidSlotTransition("No signature upload to retry")
        if status != SlotStatus.ERROR:
            raise InvalidSlotTransition(f"Cannot retry {slot.value}: slot is {status.value}")

    async def retry(self, attempt_id: str, slot: SlotName) -> SubmissionOutcome:
        """Re-run one failed slot against the attempt's original namespace.

        Sibling slots are left untouched. When the row already exists its locator
        fields are patched; otherwise a successful retry writes the row with the
        submission id fixed at the start of the attempt.

        Raises:
            AttemptNotFoundError: Unknown or expired attempt
            InvalidSlotTransition: Slot is not in a retryable state
            OfflineError: Connectivity probe failed
        """
        attempt = self.registry.get(attempt_id)
        self.check_retryable(attempt, slot)
        if self.probe is not None:
            await self.probe.check()

        async with attempt.lock:
            self.check_retryable(attempt, slot)
            log = logger.bind(attempt_id=attempt.id, submission_id=str(attempt.submission_id))
            log.info("submission.retry.started", slot=slot.value)
            _begin(attempt.tracker, slot)

            if slot == SlotName.RECORD:
                outcome = await self._record(attempt, check_existing=True)
            else:
                await self._provision(attempt)
                if slot == SlotName.SIGNATURE:
                    await self._upload_signature(attempt)
                else:
                    await self._upload_video(attempt, slot)

                if attempt.recorded:
                    await self._patch_locators(attempt)
                    outcome = self._recorded_outcome(attempt)
                else:
                    outcome = await self._finalize(attempt)

            attempt.outcome = outcome
            log.info("submission.retry.finished", slot=slot.value, outcome=outcome.kind.value)
            return outcome

    def start_retry(self, attempt_id: str, slot: SlotName) -> UploadAttempt:
        """Validate a retry and run it as a background task."""
        attempt = self.registry.get(attempt_id)
        self.check_retryable(attempt, slot)
        attempt.task = asyncio.create_task(self._retry_guarded(attempt, slot))
        return attempt

    async def _retry_guarded(self, attempt: UploadAttempt, slot: SlotName) -> None:
        try:
            await self.retry(attempt.id, slot)
        except OfflineError:
            attempt.outcome = SubmissionOutcome.offline(attempt.id)
        except ServiceError as e:
            logger.warning(
                "submission.retry.rejected", attempt_id=attempt.id, slot=slot.value, error=e.message
            )

    # Pipeline

    async def _run_guarded(self, attempt: UploadAttempt, preflight: bool) -> SubmissionOutcome:
        async with attempt.lock:
            try:
                outcome = await self._run(attempt, preflight)
            except asyncio.CancelledError:
                self._mark_cancelled(attempt)
                attempt.outcome = SubmissionOutcome.cancelled(attempt.id)
                raise
            except Exception as e:
                logger.error(
                    "submission.attempt.crashed",
                    attempt_id=attempt.id,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                outcome = self._summarize_after_crash(attempt)

            attempt.outcome = outcome
            return outcome

    async def _run(self, attempt: UploadAttempt, preflight: bool) -> SubmissionOutcome:
        log = logger.bind(attempt_id=attempt.id, submission_id=str(attempt.submission_id))

        if preflight and self.probe is not None:
            try:
                await self.probe.check()
            except OfflineError:
                log.warning("submission.upload.offline")
                return SubmissionOutcome.offline(attempt.id)

        if not self.video_targets:
            log.error("submission.upload.no_providers")
            return SubmissionOutcome.total_failure(attempt.id, [])

        log.info(
            "submission.upload.started",
            namespace=attempt.namespace_path,
            size=attempt.video.size,
            slots=[slot.value for slot in self.video_targets],
        )

        await self._provision(attempt)

        coros: list[Coroutine[Any, Any, None]] = []
        for slot in self.video_targets:
            attempt.tracker.start(slot)
            coros.append(self._upload_video(attempt, slot))
        if attempt.signature is not None and self.file_targets:
            attempt.tracker.start(SlotName.SIGNATURE)
            coros.append(self._upload_signature(attempt))

        # No short-circuit: every upload settles before the record write
        results = await asyncio.gather(*coros, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                log.error(
                    "submission.upload.unexpected_error",
                    error=str(result),
                    error_type=type(result).__name__,
                )

        return await self._finalize(attempt)

    async def _provision(self, attempt: UploadAttempt) -> None:
        """Create the namespace folder at most once per provider and attempt.

        A failed call is not repeated: uploads create the folder implicitly, and
        a second call would let the provider auto-rename into a duplicate folder.
        """
        targets = [*self.video_targets.values(), *self.file_targets]
        for target in targets:
            if target.name in attempt.provision_attempted:
                continue
            attempt.provision_attempted.add(target.name)
            if not isinstance(target, FolderProvisioner):
                continue
            if not await target.create_folder(attempt.namespace_path):
                logger.warning(
                    "submission.namespace.provision_failed",
                    attempt_id=attempt.id,
                    provider=target.name,
                    namespace=attempt.namespace_path,
                )

    async def _upload_video(self, attempt: UploadAttempt, slot: SlotName) -> None:
        target = self.video_targets[slot]
        tracker = attempt.tracker

        def on_progress(percent: int) -> None:
            tracker.report_progress(slot, percent)

        try:
            result = await target.upload(attempt.video, attempt.namespace_path, on_progress)
        except ServiceError as e:
            tracker.fail(slot, e.message, classify_failure(e))
            logger.warning(
                "submission.upload.slot_failed",
                attempt_id=attempt.id,
                slot=slot.value,
                provider=target.name,
                error=e.message,
                detail=e.detail,
                retryable=e.retryable,
            )
            return
        except Exception:
            tracker.fail(slot, "Unexpected error during upload", FailureKind.TRANSPORT)
            raise

        attempt.video_results[slot.value] = result
        tracker.succeed(slot, result.public_url or result.path or result.locator)
        logger.info(
            "submission.upload.slot_succeeded",
            attempt_id=attempt.id,
            slot=slot.value,
            provider=target.name,
            locator=result.locator,
            path=result.path,
        )

    async def _upload_signature(self, attempt: UploadAttempt) -> None:
        """Upload the signature to every file target that does not have it yet."""
        assert attempt.signature is not None
        tracker = attempt.tracker
        errors: list[ServiceError] = []

        for target in self.file_targets:
            if target.name in attempt.signature_results:
                continue
            try:
                result = await target.upload(attempt.signature, attempt.namespace_path)
            except ServiceError as e:
                errors.append(e)
                logger.warning(
                    "submission.signature.failed",
                    attempt_id=attempt.id,
                    provider=target.name,
                    error=e.message,
                    detail=e.detail,
                )
                continue
            attempt.signature_results[target.name] = result

        if attempt.signature_results:
            first = next(iter(attempt.signature_results.values()))
            tracker.succeed(SlotName.SIGNATURE, first.path or first.locator)
        else:
            error = errors[0] if errors else None
            tracker.fail(
                SlotName.SIGNATURE,
                error.message if error else "Signature upload failed",
                classify_failure(error) if error else FailureKind.TRANSPORT,
            )

    async def _finalize(self, attempt: UploadAttempt) -> SubmissionOutcome:
        if not attempt.video_results:
            failed = self._failed_slots(attempt)
            logger.error(
                "submission.upload.total_failure",
                attempt_id=attempt.id,
                failed=failed,
                errors={slot: attempt.tracker.get(SlotName(slot)).error for slot in failed},
            )
            return SubmissionOutcome.total_failure(attempt.id, failed)

        return await self._record(attempt, check_existing=False)

    async def _record(self, attempt: UploadAttempt, check_existing: bool) -> SubmissionOutcome:
        """Write the row (and companion file); the row is authoritative."""
        tracker = attempt.tracker
        _begin(tracker, SlotName.RECORD)
        log = logger.bind(attempt_id=attempt.id, submission_id=str(attempt.submission_id))

        if check_existing and await self._row_exists(attempt):
            # An earlier insert reported failure but the row landed
            log.info("submission.record.already_present")
            attempt.recorded = True
            await self._patch_locators(attempt)
        else:
            submission = self._build_record(attempt)
            companion_result, insert_result = await asyncio.gather(
                self._write_companion(attempt),
                self.record_store.insert(submission),
                return_exceptions=True,
            )
            if isinstance(companion_result, Exception):
                log.warning(
                    "submission.companion.unexpected_error",
                    error=str(companion_result),
                    error_type=type(companion_result).__name__,
                )
            if isinstance(insert_result, BaseException):
                if not isinstance(insert_result, Exception):
                    raise insert_result
                tracker.fail(
                    SlotName.RECORD,
                    "Could not save submission details",
                    FailureKind.RECORD_WRITE,
                )
                log.error(
                    "submission.record.orphaned_uploads",
                    reference=attempt.id,
                    namespace=attempt.namespace_path,
                    locators=self._locator_fields(attempt),
                    error=str(insert_result),
                    error_type=type(insert_result).__name__,
                )
                return SubmissionOutcome.record_write_failed(
                    attempt.id, self._stored_slots(attempt), self._failed_slots(attempt)
                )
            attempt.recorded = True

        tracker.succeed(SlotName.RECORD, str(attempt.submission_id))
        log.info(
            "submission.record.written",
            stored=self._stored_slots(attempt),
            failed=self._failed_slots(attempt),
        )

        self._spawn(self._confirm(attempt))
        if attempt.form.keep_in_touch and self.mailing_list is not None:
            self._spawn(self._enroll(attempt))

        return self._recorded_outcome(attempt)

    async def _row_exists(self, attempt: UploadAttempt) -> bool:
        try:
            return await self.record_store.exists(attempt.submission_id)
        except ServiceError as e:
            logger.warning("submission.record.exists_check_failed", error=e.message)
            return False

    async def _write_companion(self, attempt: UploadAttempt) -> None:
        """Best-effort human-readable copy of the form next to the files."""
        signature = next(iter(attempt.signature_results.values()), None)
        artifact = companion_file(
            attempt.form, attempt.submitted_at, signature.path if signature else None
        )
        for target in self.file_targets:
            if target.name in attempt.companion_written:
                continue
            try:
                await target.upload(artifact, attempt.namespace_path)
            except ServiceError as e:
                logger.warning(
                    "submission.companion.failed",
                    attempt_id=attempt.id,
                    provider=target.name,
                    error=e.message,
                )
                continue
            attempt.companion_written.add(target.name)

    async def _patch_locators(self, attempt: UploadAttempt) -> None:
        """Fill in locators from a retried slot without touching moderation state.

        A backup copy already on the row is kept as is: after approval it may have
        been relocated, and the row is the only record of where it went.
        """
        fields = self._locator_fields(attempt)
        try:
            current = await self.record_store.get(attempt.submission_id)
            if current.backup_video_path:
                fields.pop("backup_file_id", None)
                fields.pop("backup_video_path", None)
            elif "backup_video_path" in fields and current.relocation_status in (
                RelocationStatus.NOT_APPLICABLE,
                RelocationStatus.NOT_REQUESTED,
            ):
                # Approved before the backup copy existed: the next approve relocates it
                fields["relocation_status"] = (
                    RelocationStatus.PENDING
                    if current.status == SubmissionStatus.APPROVED
                    else RelocationStatus.NOT_REQUESTED
                )
            await self.record_store.update(attempt.submission_id, fields)
        except ServiceError as e:
            logger.error(
                "submission.record.locator_update_failed",
                attempt_id=attempt.id,
                submission_id=str(attempt.submission_id),
                locators=fields,
                error=e.message,
            )

    # Record construction

    def _locator_fields(self, attempt: UploadAttempt) -> dict[str, Any]:
        media = attempt.video_results.get(SlotName.MEDIA.value)
        backup = attempt.video_results.get(SlotName.BACKUP.value)
        signature_backup = (
            attempt.signature_results.get(self.backup_store.name) if self.backup_store else None
        )
        signature_bucket = (
            attempt.signature_results.get(self.record_bucket.name) if self.record_bucket else None
        )

        fields: dict[str, Any] = {"namespace_path": attempt.namespace_path}
        if media:
            fields["media_locator"] = media.locator
            fields["media_url"] = media.public_url
        if backup:
            fields["backup_file_id"] = backup.locator
            fields["backup_video_path"] = backup.path
        if signature_backup:
            fields["signature_path"] = signature_backup.path
        if signature_bucket:
            fields["signature_bucket_path"] = signature_bucket.path
            fields["signature_url"] = signature_bucket.public_url
        return fields

    def _build_record(self, attempt: UploadAttempt) -> Submission:
        fields = {
            **attempt.form.model_dump(),
            **self._locator_fields(attempt),
        }
        fields["relocation_status"] = (
            RelocationStatus.NOT_REQUESTED
            if fields.get("backup_video_path")
            else RelocationStatus.NOT_APPLICABLE
        )
        return Submission(id=attempt.submission_id, submitted_at=attempt.submitted_at, **fields)

    # Outcome helpers

    def _stored_slots(self, attempt: UploadAttempt) -> list[str]:
        return [slot.value for slot in VIDEO_SLOTS if slot.value in attempt.video_results]

    def _failed_slots(self, attempt: UploadAttempt) -> list[str]:
        return [
            slot.value
            for slot in (SlotName.MEDIA, SlotName.BACKUP, SlotName.SIGNATURE)
            if attempt.tracker.status(slot) == SlotStatus.ERROR
        ]

    def _recorded_outcome(self, attempt: UploadAttempt) -> SubmissionOutcome:
        return SubmissionOutcome.recorded_outcome(
            attempt.id,
            attempt.submission_id,
            self._stored_slots(attempt),
            self._failed_slots(attempt),
        )

    def _summarize_after_crash(self, attempt: UploadAttempt) -> SubmissionOutcome:
        if attempt.recorded:
            return self._recorded_outcome(attempt)
        if attempt.video_results:
            return SubmissionOutcome.record_write_failed(
                attempt.id, self._stored_slots(attempt), self._failed_slots(attempt)
            )
        return SubmissionOutcome.total_failure(attempt.id, self._failed_slots(attempt))

    def _mark_cancelled(self, attempt: UploadAttempt) -> None:
        for slot in SlotName:
            if attempt.tracker.status(slot) == SlotStatus.PENDING:
                attempt.tracker.fail(slot, "Upload cancelled", FailureKind.TRANSPORT)
        logger.info(
            "submission.attempt.cancelled",
            attempt_id=attempt.id,
            recorded=attempt.recorded,
            locators=self._locator_fields(attempt),
        )

    # Detached side effects

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _confirm(self, attempt: UploadAttempt) -> None:
        form = attempt.form
        try:
            delivered = await self.notifier.notify(form.email, form.first_name, form.last_name)
        except Exception as e:
            logger.warning(
                "submission.confirmation.failed",
                attempt_id=attempt.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return
        if not delivered:
            logger.warning("submission.confirmation.not_delivered", attempt_id=attempt.id)

    async def _enroll(self, attempt: UploadAttempt) -> None:
        form = attempt.form
        try:
            await self.mailing_list.add(  # type: ignore[union-attr]
                form.first_name,
                form.last_name,
                form.email,
                source=MailingListSource.SUBMISSION,
                keep_in_touch=True,
            )
        except ServiceError as e:
            logger.warning("submission.mailing_list.failed", attempt_id=attempt.id, error=e.message)
