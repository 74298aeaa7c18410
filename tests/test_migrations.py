"""Tests against PostgreSQL built by the alembic migrations.

Tests cover:
- Migration head applied and enum types created
- Case-insensitive uniqueness of mailing-list emails enforced by the lower(email) index
- Submission rows with enum columns round-trip through the migrated schema
"""

import asyncio

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from clipvault.models.mailing_list import MailingListEntry
from clipvault.models.submission import RelocationStatus, SubmissionStatus
from clipvault.services.mailing_list import MailingListService
from clipvault.services.record_store import SqlRecordStore
from fakes import make_submission


@pytest.mark.asyncio
async def test_migration_head_and_enum_types(pg_session_factory):
    async with pg_session_factory() as session:
        version = (await session.execute(text("SELECT version_num FROM alembic_version"))).scalar()
        enum_types = (
            await session.execute(
                text(
                    "SELECT typname FROM pg_type WHERE typname IN "
                    "('submissionstatus', 'relocationstatus', 'mailinglistsource')"
                )
            )
        ).scalars().all()

    assert version == "3f9a1c2d7b10"
    assert sorted(enum_types) == ["mailinglistsource", "relocationstatus", "submissionstatus"]


@pytest.mark.asyncio
async def test_lower_email_index_rejects_case_variant(pg_uow_factory):
    async with await pg_uow_factory() as uow:
        await uow.mailing_list.add(
            MailingListEntry(first_name="Jane", last_name="Doe", email="jane@example.com")
        )

    with pytest.raises(IntegrityError):
        async with await pg_uow_factory() as uow:
            await uow.mailing_list.add(
                MailingListEntry(first_name="Jane", last_name="Doe", email="JANE@Example.com")
            )


@pytest.mark.asyncio
async def test_concurrent_joins_add_one_entry(pg_uow_factory):
    service = MailingListService(pg_uow_factory)

    results = await asyncio.gather(
        *(service.add("Jane", "Doe", email) for email in ("jane@example.com", "Jane@Example.com"))
    )

    assert sorted(results) == [False, True]
    assert await service.count() == 1


@pytest.mark.asyncio
async def test_submission_round_trip_on_migrated_schema(pg_uow_factory):
    record_store = SqlRecordStore(pg_uow_factory)
    submission_id = await record_store.insert(
        make_submission(
            status=SubmissionStatus.APPROVED,
            relocation_status=RelocationStatus.PENDING,
            namespace_path="/submissions/2024-05-01T10-15-30-000Z_Jane_Doe",
        )
    )

    row = await record_store.get(submission_id)

    assert row.status == SubmissionStatus.APPROVED
    assert row.relocation_status == RelocationStatus.PENDING
    assert row.submitted_at.tzinfo is not None
    async with await pg_uow_factory() as uow:
        counts = await uow.submissions.count_by_status()
    assert counts == {
        SubmissionStatus.PENDING: 0,
        SubmissionStatus.APPROVED: 1,
        SubmissionStatus.REJECTED: 0,
    }
