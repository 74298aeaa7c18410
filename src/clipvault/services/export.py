"""Flat (CSV) and structured (JSON) export of a submission set."""

import csv
import io
import json
from typing import Any, Sequence

from clipvault.models.submission import Submission

EXPORT_FIELDS = [
    "id",
    "first_name",
    "last_name",
    "email",
    "location",
    "description",
    "status",
    "submitted_at",
    "reviewed_at",
    "is_own_recording",
    "recorder_name",
    "want_credit",
    "credit_platform",
    "credit_username",
    "payout_email",
    "agree_terms",
    "no_other_submission",
    "keep_in_touch",
    "admin_notes",
    "namespace_path",
    "media_locator",
    "media_url",
    "backup_file_id",
    "backup_video_path",
    "approved_video_path",
    "relocation_status",
    "relocation_error",
    "signature_path",
    "signature_bucket_path",
    "signature_url",
]


def export_row(submission: Submission) -> dict[str, Any]:
    """JSON-safe projection: UUIDs as strings, timestamps in ISO-8601, enums as values."""
    data = submission.model_dump(mode="json")
    return {name: data.get(name) for name in EXPORT_FIELDS}


def to_csv(submissions: Sequence[Submission]) -> str:
    """One header row plus one row per submission, quoted per RFC 4180."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_FIELDS, lineterminator="\r\n")
    writer.writeheader()
    for submission in submissions:
        row = export_row(submission)
        writer.writerow({k: "" if v is None else v for k, v in row.items()})
    return buffer.getvalue()


def to_json(submissions: Sequence[Submission]) -> str:
    """Array of objects, one per submission."""
    return json.dumps([export_row(submission) for submission in submissions], ensure_ascii=False, indent=2)
