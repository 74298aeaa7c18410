"""Mailing list enrolment tests."""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from clipvault.models.mailing_list import MailingListSource
from clipvault.services.exceptions import RecordStoreError
from clipvault.services.mailing_list import MailingListService


@pytest.mark.asyncio
async def test_add_new_subscriber(uow_factory):
    service = MailingListService(uow_factory)

    assert await service.add("Jane", "Doe", "jane@example.com") is True
    assert await service.count() == 1

    async with await uow_factory() as uow:
        entry = await uow.mailing_list.get_by_email("jane@example.com")
    assert entry is not None
    assert entry.source == MailingListSource.USER_INFO


@pytest.mark.asyncio
async def test_duplicate_email_is_ignored_regardless_of_case(uow_factory):
    service = MailingListService(uow_factory)

    assert await service.add("Jane", "Doe", "jane@example.com") is True
    assert await service.add("Jane", "Doe", "  JANE@Example.com ") is False

    assert await service.count() == 1


@pytest.mark.asyncio
async def test_submission_source_is_recorded(uow_factory):
    service = MailingListService(uow_factory)

    await service.add("Omar", "Said", "omar@example.com", source=MailingListSource.SUBMISSION)

    async with await uow_factory() as uow:
        entries = await uow.mailing_list.list_all()
    assert [e.source for e in entries] == [MailingListSource.SUBMISSION]


@pytest.mark.asyncio
async def test_database_failure_raises_record_store_error(uow_factory):
    service = MailingListService(uow_factory)

    async def broken_factory():
        raise OperationalError("INSERT", {}, Exception("connection refused"))

    with patch.object(service, "uow_factory", broken_factory):
        with pytest.raises(RecordStoreError):
            await service.add("Jane", "Doe", "jane@example.com")
