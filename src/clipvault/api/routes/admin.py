"""Admin review API endpoints.

- GET /api/admin/submissions - Filtered submission list
- GET /api/admin/submissions/export - CSV or JSON download of the filtered list
- GET /api/admin/submissions/{id} - One submission
- GET /api/admin/stats - Dashboard statistics
- POST /api/admin/submissions/{id}/approve - Approve and relocate the backup copy
- POST /api/admin/submissions/{id}/reject - Reject with an optional reason
- PATCH /api/admin/submissions/{id}/note - Replace the admin note
- DELETE /api/admin/submissions/{id}?confirm=true - Delete permanently
- GET /api/admin/storage/health - Backup store health

The admin surface has no authentication; deploy it behind an authenticating proxy.
"""

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, Field

from clipvault.api.dependencies import (
    get_backup_store,
    get_mailing_list,
    get_moderation,
    get_record_store,
)
from clipvault.models.submission import Submission, SubmissionStatus, utcnow
from clipvault.services.exceptions import FailureKind, RecordStoreError, SubmissionNotFoundError
from clipvault.services.export import to_csv, to_json
from clipvault.services.filters import DatePreset, SubmissionFilter, dashboard_stats
from clipvault.services.mailing_list import MailingListService
from clipvault.services.moderation import ModerationResult, ModerationResultKind, ModerationService
from clipvault.services.record_store import SqlRecordStore
from clipvault.services.storage.dropbox_client import DropboxClient

logger = structlog.get_logger()
router = APIRouter(prefix="/api/admin", tags=["admin"])


class RejectRequest(BaseModel):
    note: Optional[str] = Field(default=None, max_length=5000)


class NoteRequest(BaseModel):
    note: str = Field(..., max_length=5000)


def submission_filter(
    search: Optional[str] = Query(default=None, description="Name, email, location or description"),
    date_range: DatePreset = Query(default=DatePreset.ALL),
    submitted_from: Optional[datetime] = Query(default=None),
    submitted_to: Optional[datetime] = Query(default=None),
    own_recording: Optional[bool] = Query(default=None),
    want_credit: Optional[bool] = Query(default=None),
    missing_payout_email: Optional[bool] = Query(default=None),
    status_filter: Optional[list[SubmissionStatus]] = Query(default=None, alias="status"),
) -> SubmissionFilter:
    """Build the filter from query parameters (every parameter narrows the result)."""
    flt = SubmissionFilter(
        search_terms=(search,) if search else (),
        submitted_from=submitted_from,
        submitted_to=submitted_to,
        own_recording=own_recording,
        want_credit=want_credit,
        missing_payout_email=missing_payout_email,
        statuses=frozenset(status_filter) if status_filter else None,
    )
    if date_range != DatePreset.ALL:
        flt = flt & SubmissionFilter.from_preset(date_range, utcnow())
    return flt


async def _load(moderation: ModerationService) -> list[Submission]:
    try:
        return await moderation.refresh()
    except RecordStoreError as e:
        logger.error("admin.submissions.load_failed", error=e.message)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)


def _respond(result: ModerationResult) -> dict:
    """Map a moderation result onto an HTTP response."""
    if result.kind == ModerationResultKind.REQUIRES_CONFIRMATION:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.message)
    if result.kind == ModerationResultKind.FAILED:
        if result.failure_kind == FailureKind.NOT_FOUND:
            code = status.HTTP_404_NOT_FOUND
        elif result.failure_kind == FailureKind.MODERATION:
            code = status.HTTP_409_CONFLICT
        else:
            code = status.HTTP_503_SERVICE_UNAVAILABLE
        raise HTTPException(status_code=code, detail=result.message)
    return result.to_dict()


@router.get("/submissions")
async def list_submissions(
    flt: SubmissionFilter = Depends(submission_filter),
    moderation: ModerationService = Depends(get_moderation),
):
    submissions = flt.apply(await _load(moderation))
    return {
        "count": len(submissions),
        "submissions": [s.model_dump(mode="json") for s in submissions],
    }


@router.get("/submissions/export")
async def export_submissions(
    export_format: Literal["csv", "json"] = Query(default="csv", alias="format"),
    flt: SubmissionFilter = Depends(submission_filter),
    moderation: ModerationService = Depends(get_moderation),
):
    """Download the filtered submissions as CSV or JSON."""
    submissions = flt.apply(await _load(moderation))
    stamp = utcnow().strftime("%Y-%m-%d")

    if export_format == "json":
        body, media_type = to_json(submissions), "application/json"
    else:
        body, media_type = to_csv(submissions), "text/csv; charset=utf-8"

    logger.info("admin.export.completed", format=export_format, count=len(submissions))
    return Response(
        content=body,
        media_type=media_type,
        headers={
            "Content-Disposition": f'attachment; filename="submissions-{stamp}.{export_format}"'
        },
    )


@router.get("/submissions/{submission_id}")
async def get_submission(
    submission_id: UUID, record_store: SqlRecordStore = Depends(get_record_store)
):
    try:
        submission = await record_store.get(submission_id)
    except SubmissionNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except RecordStoreError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)
    return submission.model_dump(mode="json")


@router.get("/stats")
async def get_stats(
    moderation: ModerationService = Depends(get_moderation),
    mailing_list: MailingListService = Depends(get_mailing_list),
):
    submissions = await _load(moderation)
    try:
        subscribers = await mailing_list.count()
    except RecordStoreError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)
    return dashboard_stats(submissions, subscribers, utcnow())


@router.post("/submissions/{submission_id}/approve")
async def approve_submission(
    submission_id: UUID, moderation: ModerationService = Depends(get_moderation)
):
    return _respond(await moderation.approve(submission_id))


@router.post("/submissions/{submission_id}/reject")
async def reject_submission(
    submission_id: UUID,
    request: Optional[RejectRequest] = None,
    moderation: ModerationService = Depends(get_moderation),
):
    note = request.note if request else None
    return _respond(await moderation.reject(submission_id, note))


@router.patch("/submissions/{submission_id}/note")
async def annotate_submission(
    submission_id: UUID,
    request: NoteRequest,
    moderation: ModerationService = Depends(get_moderation),
):
    return _respond(await moderation.annotate(submission_id, request.note))


@router.delete("/submissions/{submission_id}")
async def delete_submission(
    submission_id: UUID,
    confirm: bool = Query(default=False),
    moderation: ModerationService = Depends(get_moderation),
):
    """Delete permanently; without ``confirm=true`` nothing changes and 409 is returned."""
    return _respond(await moderation.delete(submission_id, confirmed=confirm))


@router.get("/storage/health")
async def storage_health(
    response: Response, backup_store: Optional[DropboxClient] = Depends(get_backup_store)
):
    if backup_store is None:
        return {"status": "unknown", "message": "Backup store is not configured"}

    health = await backup_store.check_health()
    if health.status == "error":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {
        "status": health.status,
        "message": health.message,
        "checked_at": health.checked_at.isoformat(),
        "details": {
            "token_valid": health.token_valid,
            "folder_access": health.folder_access,
            "quota_ok": health.quota_ok,
        },
    }
