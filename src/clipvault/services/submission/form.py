"""Validated submission form metadata."""

from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator


class SubmissionForm(BaseModel):
    """Non-binary fields of a submission, as entered by the submitter."""

    first_name: str = Field(min_length=1, max_length=255)
    last_name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    location: Optional[str] = Field(default=None, max_length=500)
    description: Optional[str] = None

    is_own_recording: bool = True
    recorder_name: Optional[str] = Field(default=None, max_length=255)
    want_credit: bool = False
    credit_platform: Optional[str] = Field(default=None, max_length=100)
    credit_username: Optional[str] = Field(default=None, max_length=255)
    payout_email: Optional[EmailStr] = None

    agree_terms: bool
    no_other_submission: bool
    keep_in_touch: bool = False

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, value: str) -> str:
        return value.strip() if isinstance(value, str) else value

    @field_validator("payout_email", mode="before")
    @classmethod
    def blank_payout_email(cls, value: Optional[str]) -> Optional[str]:
        if isinstance(value, str):
            value = value.strip()
        return value or None

    @model_validator(mode="after")
    def validate_conditional_fields(self) -> "SubmissionForm":
        """Legal flags must be accepted; attribution fields depend on their toggles."""
        if not self.agree_terms:
            raise ValueError("You must agree to the terms and conditions")
        if not self.no_other_submission:
            raise ValueError("You must confirm that you have not submitted this clip elsewhere")
        if not self.is_own_recording and not (self.recorder_name or "").strip():
            raise ValueError("Recorder name is required when you did not film the clip")
        if self.want_credit and not (
            (self.credit_platform or "").strip() and (self.credit_username or "").strip()
        ):
            raise ValueError("Platform and username are required when requesting credit")

        # Drop values whose toggle is off so they never reach the record
        if self.is_own_recording:
            self.recorder_name = None
        if not self.want_credit:
            self.credit_platform = None
            self.credit_username = None
        return self
