"""Admin query layer: composable submission filters and dashboard statistics.

Filters are pure: ``flt.apply(records)`` never mutates its input and keeps the
input order. Composition is a logical AND, so ``b.apply(a.apply(records))`` equals
``(a & b).apply(records)`` for every pair of filters.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, Optional, Sequence

from pydantic import BaseModel, ConfigDict, field_validator

from clipvault.models.submission import Submission, SubmissionStatus


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DatePreset(str, Enum):
    ALL = "all"
    TODAY = "today"
    YESTERDAY = "yesterday"
    THIS_WEEK = "this_week"
    THIS_MONTH = "this_month"
    LAST_30_DAYS = "last_30_days"


def preset_range(
    preset: DatePreset, now: datetime
) -> tuple[Optional[datetime], Optional[datetime]]:
    """Resolve a preset to a half-open ``[start, end)`` range in UTC.

    Weeks start on Sunday.
    """
    now = as_utc(now)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if preset == DatePreset.TODAY:
        return midnight, midnight + timedelta(days=1)
    if preset == DatePreset.YESTERDAY:
        return midnight - timedelta(days=1), midnight
    if preset == DatePreset.THIS_WEEK:
        days_since_sunday = (midnight.weekday() + 1) % 7
        return midnight - timedelta(days=days_since_sunday), None
    if preset == DatePreset.THIS_MONTH:
        return midnight.replace(day=1), None
    if preset == DatePreset.LAST_30_DAYS:
        return now - timedelta(days=30), None
    return None, None


class SubmissionFilter(BaseModel):
    """Filter criteria over submissions.

    Every populated criterion must hold for a record to match:
        - search_terms: each term is a case-insensitive substring of the full
          name, email, location or description
        - submitted_from / submitted_to: half-open ``[from, to)`` range
        - own_recording / want_credit: exact flag match
        - missing_payout_email: True keeps records without a payout email,
          False keeps records with one
        - statuses: record status must be in the set
    """

    model_config = ConfigDict(frozen=True)

    search_terms: tuple[str, ...] = ()
    submitted_from: Optional[datetime] = None
    submitted_to: Optional[datetime] = None
    own_recording: Optional[bool] = None
    want_credit: Optional[bool] = None
    missing_payout_email: Optional[bool] = None
    statuses: Optional[frozenset[SubmissionStatus]] = None
    impossible: bool = False

    @field_validator("search_terms", mode="before")
    @classmethod
    def normalize_terms(cls, value: Iterable[str] | str | None) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            value = (value,)
        terms: list[str] = []
        for term in value:
            term = term.strip().lower()
            if term and term not in terms:
                terms.append(term)
        return tuple(terms)

    @field_validator("submitted_from", "submitted_to")
    @classmethod
    def normalize_datetime(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None

    @classmethod
    def from_preset(cls, preset: DatePreset, now: datetime) -> "SubmissionFilter":
        start, end = preset_range(preset, now)
        return cls(submitted_from=start, submitted_to=end)

    def matches(self, submission: Submission) -> bool:
        if self.impossible:
            return False

        if self.search_terms:
            haystack = [
                f"{submission.first_name} {submission.last_name}".lower(),
                submission.email.lower(),
                (submission.location or "").lower(),
                (submission.description or "").lower(),
            ]
            for term in self.search_terms:
                if not any(term in field for field in haystack):
                    return False

        submitted_at = as_utc(submission.submitted_at)
        if self.submitted_from is not None and submitted_at < self.submitted_from:
            return False
        if self.submitted_to is not None and submitted_at >= self.submitted_to:
            return False

        if self.own_recording is not None and submission.is_own_recording != self.own_recording:
            return False
        if self.want_credit is not None and submission.want_credit != self.want_credit:
            return False
        if self.missing_payout_email is not None:
            missing = not submission.payout_email
            if missing != self.missing_payout_email:
                return False

        if self.statuses is not None and SubmissionStatus(submission.status) not in self.statuses:
            return False

        return True

    def apply(self, submissions: Sequence[Submission]) -> list[Submission]:
        return [submission for submission in submissions if self.matches(submission)]

    def __and__(self, other: "SubmissionFilter") -> "SubmissionFilter":
        impossible = self.impossible or other.impossible

        def merge_flag(a: Optional[bool], b: Optional[bool]) -> Optional[bool]:
            nonlocal impossible
            if a is not None and b is not None and a != b:
                impossible = True
            return a if a is not None else b

        starts = [d for d in (self.submitted_from, other.submitted_from) if d is not None]
        ends = [d for d in (self.submitted_to, other.submitted_to) if d is not None]

        if self.statuses is not None and other.statuses is not None:
            statuses: Optional[frozenset[SubmissionStatus]] = self.statuses & other.statuses
        else:
            statuses = self.statuses if self.statuses is not None else other.statuses

        own_recording = merge_flag(self.own_recording, other.own_recording)
        want_credit = merge_flag(self.want_credit, other.want_credit)
        missing_payout_email = merge_flag(self.missing_payout_email, other.missing_payout_email)

        return SubmissionFilter(
            search_terms=self.search_terms + other.search_terms,
            submitted_from=max(starts) if starts else None,
            submitted_to=min(ends) if ends else None,
            own_recording=own_recording,
            want_credit=want_credit,
            missing_payout_email=missing_payout_email,
            statuses=statuses,
            impossible=impossible,
        )


def dashboard_stats(
    submissions: Sequence[Submission], mailing_list_size: int, now: datetime
) -> dict[str, int]:
    """Totals by status plus submissions in the last day, week and 30 days."""
    now = as_utc(now)
    day_ago = now - timedelta(days=1)
    week_ago = now - timedelta(days=7)
    month_ago = now - timedelta(days=30)

    stats = {
        "total": len(submissions),
        "pending": 0,
        "approved": 0,
        "rejected": 0,
        "daily": 0,
        "weekly": 0,
        "monthly": 0,
        "total_users": mailing_list_size,
    }
    for submission in submissions:
        stats[SubmissionStatus(submission.status).value] += 1
        submitted_at = as_utc(submission.submitted_at)
        if submitted_at >= day_ago:
            stats["daily"] += 1
        if submitted_at >= week_ago:
            stats["weekly"] += 1
        if submitted_at >= month_ago:
            stats["monthly"] += 1
    return stats
