"""Export tests: every filtered record appears once in CSV and JSON, with safe quoting."""

import csv
import io
import json

from clipvault.models.submission import RelocationStatus, SubmissionStatus
from clipvault.services.export import EXPORT_FIELDS, export_row, to_csv, to_json
from fakes import make_submission


def tricky_submissions():
    return [
        make_submission(description='Said "wow", then\nlaughed', location="Paris, France"),
        make_submission(
            first_name="Zoë", email="zoe@x.com", status=SubmissionStatus.APPROVED,
            media_locator="submissions/ns/clip", admin_notes="Great; use in reel",
        ),
    ]


def test_csv_quotes_delimiters_and_round_trips():
    submissions = tricky_submissions()

    body = to_csv(submissions)
    rows = list(csv.DictReader(io.StringIO(body, newline="")))

    assert body.startswith(",".join(EXPORT_FIELDS) + "\r\n")
    assert [row["id"] for row in rows] == [str(s.id) for s in submissions]
    assert rows[0]["description"] == 'Said "wow", then\nlaughed'
    assert rows[0]["location"] == "Paris, France"
    assert rows[0]["media_locator"] == ""
    assert rows[1]["status"] == "approved"


def test_json_export_preserves_every_field():
    submissions = tricky_submissions()

    exported = json.loads(to_json(submissions))

    assert len(exported) == 2
    for submission, item in zip(submissions, exported):
        assert item == export_row(submission)
        assert list(item) == EXPORT_FIELDS
    assert exported[1]["first_name"] == "Zoë"
    assert exported[0]["submitted_at"].startswith("2024-05-01T10:15:30")


def test_empty_export():
    assert to_csv([]) == ",".join(EXPORT_FIELDS) + "\r\n"
    assert json.loads(to_json([])) == []


def test_export_carries_relocation_error_and_bucket_signature():
    submission = make_submission(
        status=SubmissionStatus.APPROVED,
        relocation_status=RelocationStatus.FAILED,
        relocation_error="Backup store is temporarily unavailable (503)",
        signature_bucket_path="ns/signature.png",
    )

    row = next(csv.DictReader(io.StringIO(to_csv([submission]), newline="")))

    assert row["relocation_status"] == "failed"
    assert row["relocation_error"] == "Backup store is temporarily unavailable (503)"
    assert row["signature_bucket_path"] == "ns/signature.png"
