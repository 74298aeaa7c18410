"""Mailing list API endpoint.

- POST /api/mailing-list - Join the mailing list (idempotent per email, case-insensitive)
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr, Field, field_validator

from clipvault.api.dependencies import get_mailing_list
from clipvault.models.mailing_list import MailingListSource
from clipvault.services.exceptions import RecordStoreError
from clipvault.services.mailing_list import MailingListService

logger = structlog.get_logger()
router = APIRouter(prefix="/api/mailing-list", tags=["mailing-list"])


class JoinRequest(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=255)
    last_name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    keep_in_touch: bool = True

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, v: str) -> str:
        return v.strip() if isinstance(v, str) else v


class JoinResponse(BaseModel):
    added: bool = Field(..., description="False when the email was already on the list")


@router.post("", response_model=JoinResponse)
async def join_mailing_list(
    request: JoinRequest, mailing_list: MailingListService = Depends(get_mailing_list)
) -> JoinResponse:
    try:
        added = await mailing_list.add(
            request.first_name,
            request.last_name,
            request.email,
            source=MailingListSource.USER_INFO,
            keep_in_touch=request.keep_in_touch,
        )
    except RecordStoreError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)
    return JoinResponse(added=added)
