"""Repository layer tests for ClipVault backend.

Tests focus on logic beyond plain CRUD:
- Case-insensitive mailing-list lookup and uniqueness
- Partial updates reject unknown fields
- Status counts and namespace listing used by the orphan report
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from clipvault.models.mailing_list import MailingListEntry
from clipvault.models.submission import SubmissionStatus
from clipvault.repositories.mailing_list import MailingListRepository
from clipvault.repositories.submission import SubmissionRepository
from fakes import make_submission


@pytest.mark.asyncio
async def test_case_insensitive_email_lookup(session):
    repo = MailingListRepository(session)
    await repo.add(MailingListEntry(first_name="Jane", last_name="Doe", email="Jane@Example.com"))
    await session.commit()

    found = await repo.get_by_email("jane@example.COM")

    assert found is not None, "Entry should be found with case-insensitive search"
    assert found.email == "Jane@Example.com"


@pytest.mark.asyncio
async def test_mailing_list_email_unique_regardless_of_case(session):
    repo = MailingListRepository(session)
    await repo.add(MailingListEntry(first_name="Jane", last_name="Doe", email="jane@example.com"))

    with pytest.raises(IntegrityError):
        await repo.add(MailingListEntry(first_name="J", last_name="D", email="JANE@example.com"))


@pytest.mark.asyncio
async def test_list_all_newest_first(session):
    repo = SubmissionRepository(session)
    base = datetime(2024, 5, 1, tzinfo=timezone.utc)
    for offset in (0, 2, 1):
        await repo.add(make_submission(email=f"{offset}@x.com", submitted_at=base + timedelta(days=offset)))
    await session.commit()

    submissions = await repo.list_all()

    assert [s.email for s in submissions] == ["2@x.com", "1@x.com", "0@x.com"]
    assert [s.email for s in await repo.list_all(limit=1, offset=1)] == ["1@x.com"]


@pytest.mark.asyncio
async def test_update_fields_applies_partial_update(session):
    repo = SubmissionRepository(session)
    submission = await repo.add(make_submission())
    await session.commit()

    updated = await repo.update_fields(submission.id, {"admin_notes": "Great clip"})

    assert updated is not None
    assert updated.admin_notes == "Great clip"
    assert updated.email == "j@x.com"


@pytest.mark.asyncio
async def test_update_fields_rejects_unknown_field(session):
    repo = SubmissionRepository(session)
    submission = await repo.add(make_submission())

    with pytest.raises(ValueError, match="Unknown submission fields: colour"):
        await repo.update_fields(submission.id, {"colour": "blue"})


@pytest.mark.asyncio
async def test_update_and_delete_missing_submission(session):
    repo = SubmissionRepository(session)
    missing = make_submission().id

    assert await repo.update_fields(missing, {"admin_notes": "x"}) is None
    assert await repo.delete_by_id(missing) is False


@pytest.mark.asyncio
async def test_count_by_status_includes_zero_counts(session):
    repo = SubmissionRepository(session)
    await repo.add(make_submission())
    await repo.add(make_submission(status=SubmissionStatus.APPROVED))
    await repo.add(make_submission(status=SubmissionStatus.APPROVED))
    await session.commit()

    counts = await repo.count_by_status()

    assert counts == {
        SubmissionStatus.PENDING: 1,
        SubmissionStatus.APPROVED: 2,
        SubmissionStatus.REJECTED: 0,
    }


@pytest.mark.asyncio
async def test_list_namespaces_lowercases_and_skips_empty(session):
    repo = SubmissionRepository(session)
    await repo.add(make_submission(namespace_path="/submissions/2024-05-01T10-15-30-000Z_Jane_Doe"))
    await repo.add(make_submission(namespace_path=None))
    await session.commit()

    namespaces = await repo.list_namespaces()

    assert namespaces == {"/submissions/2024-05-01t10-15-30-000z_jane_doe"}
