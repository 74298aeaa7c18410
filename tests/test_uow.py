"""Unit of Work pattern tests.

Tests focus on transaction management:
- Successful commits persist changes
- Exceptions trigger rollback and propagate
- Multiple repository operations are atomic
"""

import pytest

from clipvault.models.mailing_list import MailingListEntry
from fakes import make_submission


@pytest.mark.asyncio
async def test_uow_commits_on_successful_exit(uow_factory):
    async with await uow_factory() as uow:
        submission = await uow.submissions.add(make_submission())
        submission_id = submission.id

    async with await uow_factory() as uow:
        found = await uow.submissions.get_by_id(submission_id)
        assert found is not None
        assert found.email == "j@x.com"


@pytest.mark.asyncio
async def test_uow_rollback_on_exception(uow_factory):
    """Changes are rolled back and the exception is not swallowed."""
    submission = make_submission()

    with pytest.raises(ValueError, match="Simulated error"):
        async with await uow_factory() as uow:
            await uow.submissions.add(submission)
            raise ValueError("Simulated error")

    async with await uow_factory() as uow:
        assert await uow.submissions.get_by_id(submission.id) is None


@pytest.mark.asyncio
async def test_uow_multiple_repositories_atomic(uow_factory):
    submission = make_submission()

    with pytest.raises(RuntimeError):
        async with await uow_factory() as uow:
            await uow.submissions.add(submission)
            await uow.mailing_list.add(
                MailingListEntry(first_name="Jane", last_name="Doe", email="j@x.com")
            )
            raise RuntimeError("Simulated failure after both writes")

    async with await uow_factory() as uow:
        assert await uow.submissions.get_by_id(submission.id) is None
        assert await uow.mailing_list.get_by_email("j@x.com") is None
