"""Per-attempt upload status projection.

The tracker is a reporting view only. Whether a submission happened is decided
by the existence of its database row, never by tracker state.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Optional

from clipvault.services.exceptions import FailureKind, InvalidSlotTransition


class SlotName(str, Enum):
    MEDIA = "media"
    BACKUP = "backup"
    SIGNATURE = "signature"
    RECORD = "record"


class SlotStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class SlotState:
    status: SlotStatus = SlotStatus.IDLE
    locator: Optional[str] = None
    error: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    progress: int = 0


class SubmissionStatusTracker:
    """Holds one slot per provider step.

    Transitions within an attempt only move forward: idle → pending → success | error.
    ``reset`` is the single way back, error → pending, and touches that slot only.
    """

    def __init__(self) -> None:
        self._slots = {name: SlotState() for name in SlotName}

    def get(self, slot: SlotName) -> SlotState:
        state = self._slots[slot]
        return SlotState(**asdict(state))

    def status(self, slot: SlotName) -> SlotStatus:
        return self._slots[slot].status

    def start(self, slot: SlotName) -> None:
        self._transition(slot, SlotStatus.IDLE, SlotStatus.PENDING)
        self._slots[slot].progress = 0

    def report_progress(self, slot: SlotName, percent: int) -> None:
        """Record upload progress; lower values than already reported are ignored."""
        state = self._slots[slot]
        if state.status != SlotStatus.PENDING:
            return
        state.progress = max(state.progress, min(100, max(0, int(percent))))

    def succeed(self, slot: SlotName, locator: str | None = None) -> None:
        self._transition(slot, SlotStatus.PENDING, SlotStatus.SUCCESS)
        state = self._slots[slot]
        state.locator = locator
        state.error = None
        state.failure_kind = None
        state.progress = 100

    def fail(self, slot: SlotName, error: str, kind: FailureKind) -> None:
        self._transition(slot, SlotStatus.PENDING, SlotStatus.ERROR)
        state = self._slots[slot]
        state.error = error
        state.failure_kind = kind

    def reset(self, slot: SlotName) -> None:
        """Put a failed (or never started) slot back to pending for a retry."""
        state = self._slots[slot]
        if state.status not in (SlotStatus.ERROR, SlotStatus.IDLE):
            raise InvalidSlotTransition(
                f"Cannot retry {slot.value}: slot is {state.status.value}"
            )
        self._slots[slot] = SlotState(status=SlotStatus.PENDING)

    def _transition(self, slot: SlotName, expected: SlotStatus, target: SlotStatus) -> None:
        state = self._slots[slot]
        if state.status != expected:
            raise InvalidSlotTransition(
                f"Slot {slot.value} cannot move from {state.status.value} to {target.value}"
            )
        state.status = target

    def snapshot(self) -> dict[str, dict[str, Any]]:
        return {
            name.value: {
                "status": state.status.value,
                "locator": state.locator,
                "error": state.error,
                "failure_kind": state.failure_kind.value if state.failure_kind else None,
                "progress": state.progress,
            }
            for name, state in self._slots.items()
        }

    def navigation_state(self) -> dict[str, Any]:
        """Flattened per-provider booleans consumed by the confirmation page."""
        media = self._slots[SlotName.MEDIA]
        backup = self._slots[SlotName.BACKUP]
        signature = self._slots[SlotName.SIGNATURE]
        record = self._slots[SlotName.RECORD]
        return {
            "submission_id": record.locator,
            "media_success": media.status == SlotStatus.SUCCESS,
            "media_error": media.status == SlotStatus.ERROR,
            "media_url": media.locator,
            "backup_success": backup.status == SlotStatus.SUCCESS,
            "backup_pending": backup.status == SlotStatus.PENDING,
            "backup_error": backup.status == SlotStatus.ERROR,
            "backup_path": backup.locator,
            "signature_success": signature.status == SlotStatus.SUCCESS,
            "record_success": record.status == SlotStatus.SUCCESS,
            "record_error": record.status == SlotStatus.ERROR,
        }
