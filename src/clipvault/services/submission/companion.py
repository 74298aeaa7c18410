"""Namespace naming, signature decoding and the human-readable companion file."""

import base64
import binascii
import re
from datetime import datetime
from urllib.parse import unquote_to_bytes

from clipvault.services.storage.base import MediaFile
from clipvault.services.submission.form import SubmissionForm

COMPANION_FILENAME = "submission_details.txt"
SIGNATURE_FILENAME = "signature.png"

DATA_URI_PATTERN = re.compile(r"^data:(?P<type>[^;,]*)(?P<params>(;[^;,]*)*),(?P<data>.*)$", re.DOTALL)
UNSAFE_PATH_CHARS = re.compile(r"[\\/:*?\"<>|\x00-\x1f]")


def namespace_name(first_name: str, last_name: str, now: datetime) -> str:
    """Per-submission folder name: ``{timestamp}_{first}_{last}``.

    The timestamp is ISO-8601 UTC with ``:`` and ``.`` replaced by ``-``
    (e.g. ``2024-05-01T10-15-30-123Z``), so names sort chronologically.
    """
    stamp = now.strftime("%Y-%m-%dT%H-%M-%S-") + f"{now.microsecond // 1000:03d}Z"
    first = UNSAFE_PATH_CHARS.sub("", first_name).strip()
    last = UNSAFE_PATH_CHARS.sub("", last_name).strip()
    return f"{stamp}_{first}_{last}"


def decode_data_uri(data_uri: str, filename: str = SIGNATURE_FILENAME) -> MediaFile:
    """Decode a ``data:`` URI (base64 or percent-encoded) into a file.

    Raises:
        ValueError: Not a data URI, invalid base64, or empty payload
    """
    match = DATA_URI_PATTERN.match(data_uri.strip())
    if match is None:
        raise ValueError("Signature must be a data URI")

    content_type = match.group("type") or "text/plain"
    payload = match.group("data")

    if ";base64" in match.group("params"):
        try:
            data = base64.b64decode(payload, validate=True)
        except binascii.Error as e:
            raise ValueError("Signature data URI is not valid base64") from e
    else:
        data = unquote_to_bytes(payload)

    if not data:
        raise ValueError("Signature image is empty")

    return MediaFile(filename=filename, content_type=content_type, data=data)


def build_companion_text(
    form: SubmissionForm, submitted_at: datetime, signature_path: str | None
) -> str:
    """Human-readable dump of the form kept next to the uploaded files."""
    lines = ["=== SUBMISSION FORM DATA ===", ""]
    for key, value in form.model_dump().items():
        lines.append(f"{key}: {'' if value is None else value}")
    lines.append(f"signature_image: {signature_path or 'Failed to upload'}")
    lines.append("")
    lines.append(f"Submission Date: {submitted_at.isoformat()}")
    return "\n".join(lines) + "\n"


def companion_file(
    form: SubmissionForm, submitted_at: datetime, signature_path: str | None
) -> MediaFile:
    text = build_companion_text(form, submitted_at, signature_path)
    return MediaFile(
        filename=COMPANION_FILENAME, content_type="text/plain", data=text.encode("utf-8")
    )
