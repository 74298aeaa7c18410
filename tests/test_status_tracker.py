"""Status tracker tests: forward-only slot transitions and progress."""

import pytest

from clipvault.services.exceptions import FailureKind, InvalidSlotTransition
from clipvault.services.submission.tracker import SlotName, SlotStatus, SubmissionStatusTracker


def test_slot_lifecycle_success():
    tracker = SubmissionStatusTracker()

    tracker.start(SlotName.MEDIA)
    tracker.report_progress(SlotName.MEDIA, 35)
    tracker.succeed(SlotName.MEDIA, "https://media.test/clip")

    state = tracker.get(SlotName.MEDIA)
    assert state.status == SlotStatus.SUCCESS
    assert state.progress == 100
    assert state.locator == "https://media.test/clip"


def test_progress_never_decreases():
    tracker = SubmissionStatusTracker()
    tracker.start(SlotName.BACKUP)

    for value in (10, 60, 40, 150):
        tracker.report_progress(SlotName.BACKUP, value)

    assert tracker.get(SlotName.BACKUP).progress == 100


def test_progress_ignored_outside_pending():
    tracker = SubmissionStatusTracker()

    tracker.report_progress(SlotName.MEDIA, 50)

    assert tracker.get(SlotName.MEDIA).progress == 0


def test_slots_are_independent():
    tracker = SubmissionStatusTracker()
    tracker.start(SlotName.MEDIA)
    tracker.start(SlotName.BACKUP)

    tracker.fail(SlotName.BACKUP, "Dropbox is down", FailureKind.TRANSPORT)
    tracker.succeed(SlotName.MEDIA, "public-id")

    assert tracker.status(SlotName.MEDIA) == SlotStatus.SUCCESS
    assert tracker.status(SlotName.BACKUP) == SlotStatus.ERROR
    assert tracker.get(SlotName.BACKUP).failure_kind == FailureKind.TRANSPORT


def test_success_cannot_move_backwards():
    tracker = SubmissionStatusTracker()
    tracker.start(SlotName.MEDIA)
    tracker.succeed(SlotName.MEDIA)

    with pytest.raises(InvalidSlotTransition):
        tracker.fail(SlotName.MEDIA, "late failure", FailureKind.TRANSPORT)
    with pytest.raises(InvalidSlotTransition):
        tracker.reset(SlotName.MEDIA)
    with pytest.raises(InvalidSlotTransition):
        tracker.start(SlotName.MEDIA)


def test_reset_only_touches_failed_slot():
    tracker = SubmissionStatusTracker()
    tracker.start(SlotName.MEDIA)
    tracker.start(SlotName.BACKUP)
    tracker.succeed(SlotName.MEDIA, "public-id")
    tracker.fail(SlotName.BACKUP, "timeout", FailureKind.TRANSPORT)

    tracker.reset(SlotName.BACKUP)

    backup = tracker.get(SlotName.BACKUP)
    assert backup.status == SlotStatus.PENDING
    assert backup.error is None
    assert backup.progress == 0
    assert tracker.get(SlotName.MEDIA).locator == "public-id"


def test_get_returns_a_copy():
    tracker = SubmissionStatusTracker()
    state = tracker.get(SlotName.MEDIA)

    state.status = SlotStatus.SUCCESS

    assert tracker.status(SlotName.MEDIA) == SlotStatus.IDLE


def test_navigation_state_flags():
    tracker = SubmissionStatusTracker()
    tracker.start(SlotName.MEDIA)
    tracker.start(SlotName.BACKUP)
    tracker.start(SlotName.RECORD)
    tracker.succeed(SlotName.MEDIA, "https://media.test/clip")
    tracker.fail(SlotName.BACKUP, "offline", FailureKind.TRANSPORT)
    tracker.succeed(SlotName.RECORD, "submission-id")

    nav = tracker.navigation_state()

    assert nav["submission_id"] == "submission-id"
    assert nav["media_success"] is True
    assert nav["media_url"] == "https://media.test/clip"
    assert nav["backup_error"] is True
    assert nav["backup_success"] is False
    assert nav["backup_pending"] is False
    assert nav["signature_success"] is False
    assert nav["record_success"] is True
    assert tracker.snapshot()["backup"]["failure_kind"] == "transport"
