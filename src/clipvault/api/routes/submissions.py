"""Public submission API endpoints.

- POST /api/submissions - Start an upload attempt (form fields + video + signature data URI)
- GET /api/submissions/attempts/{attempt_id} - Per-slot status and final outcome
- POST /api/submissions/attempts/{attempt_id}/retry/{slot} - Retry one failed slot
- DELETE /api/submissions/attempts/{attempt_id} - Cancel an in-flight attempt

Uploads run in the background; clients poll the attempt until ``running`` is false.
"""

from typing import Annotated, Any, Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from pydantic import ValidationError

from clipvault.api.dependencies import get_orchestrator, get_settings
from clipvault.core.config import Settings
from clipvault.services.exceptions import AttemptNotFoundError, InvalidSlotTransition, OfflineError
from clipvault.services.storage.base import MediaFile
from clipvault.services.submission.form import SubmissionForm
from clipvault.services.submission.orchestrator import UploadOrchestrator
from clipvault.services.submission.tracker import SlotName

logger = structlog.get_logger()
router = APIRouter(prefix="/api/submissions", tags=["submissions"])


def _validation_detail(error: ValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": list(item["loc"]), "msg": item["msg"], "type": item["type"]}
        for item in error.errors()
    ]


@router.post("", status_code=status.HTTP_202_ACCEPTED)
async def create_submission(
    first_name: Annotated[str, Form()],
    last_name: Annotated[str, Form()],
    email: Annotated[str, Form()],
    signature: Annotated[str, Form()],
    video: Annotated[UploadFile, File()],
    agree_terms: Annotated[bool, Form()] = False,
    no_other_submission: Annotated[bool, Form()] = False,
    keep_in_touch: Annotated[bool, Form()] = False,
    location: Annotated[Optional[str], Form()] = None,
    description: Annotated[Optional[str], Form()] = None,
    is_own_recording: Annotated[bool, Form()] = True,
    recorder_name: Annotated[Optional[str], Form()] = None,
    want_credit: Annotated[bool, Form()] = False,
    credit_platform: Annotated[Optional[str], Form()] = None,
    credit_username: Annotated[Optional[str], Form()] = None,
    payout_email: Annotated[Optional[str], Form()] = None,
    orchestrator: UploadOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
):
    """Validate the form and start uploading in the background.

    Returns:
        202 with the attempt id and the URL to poll

    Raises:
        HTTPException 422: Invalid form, video or signature
        HTTPException 503: Server has no connectivity to the storage providers
    """
    try:
        form = SubmissionForm(
            first_name=first_name,
            last_name=last_name,
            email=email,
            location=location or None,
            description=description or None,
            is_own_recording=is_own_recording,
            recorder_name=recorder_name,
            want_credit=want_credit,
            credit_platform=credit_platform,
            credit_username=credit_username,
            payout_email=payout_email,
            agree_terms=agree_terms,
            no_other_submission=no_other_submission,
            keep_in_touch=keep_in_touch,
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=_validation_detail(e)
        )

    content_type = video.content_type or ""
    if not content_type.startswith("video/"):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Please upload a valid video file",
        )
    if video.size is not None and video.size > settings.max_video_bytes:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Video file size must be less than {settings.max_video_bytes // (1024 * 1024)}MB",
        )

    data = await video.read()
    if not data:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Video file is empty"
        )
    if len(data) > settings.max_video_bytes:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Video file size must be less than {settings.max_video_bytes // (1024 * 1024)}MB",
        )

    media = MediaFile(filename=video.filename or "video", content_type=content_type, data=data)

    try:
        attempt = await orchestrator.start(form, media, signature)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except OfflineError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)

    logger.info(
        "submission.accepted",
        attempt_id=attempt.id,
        submission_id=str(attempt.submission_id),
        size=media.size,
    )
    return {
        "attempt_id": attempt.id,
        "submission_id": str(attempt.submission_id),
        "status_url": f"/api/submissions/attempts/{attempt.id}",
    }


@router.get("/attempts/{attempt_id}")
async def get_attempt(
    attempt_id: str, orchestrator: UploadOrchestrator = Depends(get_orchestrator)
):
    """Current tracker snapshot, navigation state and (once finished) outcome."""
    try:
        attempt = orchestrator.registry.get(attempt_id)
    except AttemptNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    return attempt.snapshot()


@router.post("/attempts/{attempt_id}/retry/{slot}", status_code=status.HTTP_202_ACCEPTED)
async def retry_slot(
    attempt_id: str,
    slot: SlotName,
    orchestrator: UploadOrchestrator = Depends(get_orchestrator),
):
    """Retry one failed slot against the attempt's original namespace."""
    try:
        attempt = orchestrator.start_retry(attempt_id, slot)
    except AttemptNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except InvalidSlotTransition as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    return attempt.snapshot()


@router.delete("/attempts/{attempt_id}")
async def cancel_attempt(
    attempt_id: str, orchestrator: UploadOrchestrator = Depends(get_orchestrator)
):
    """Best-effort cancellation; nothing is recorded for a cancelled attempt."""
    try:
        cancelled = orchestrator.cancel(attempt_id)
    except AttemptNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    return {"attempt_id": attempt_id, "cancelled": cancelled}
