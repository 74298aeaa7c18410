"""Mailing list enrolment."""

from typing import Awaitable, Callable

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from clipvault.models.mailing_list import MailingListEntry, MailingListSource
from clipvault.services.exceptions import RecordStoreError
from clipvault.uow import UnitOfWork

logger = structlog.get_logger(__name__)


class MailingListService:
    """Adds subscribers, unique by email regardless of case."""

    def __init__(self, uow_factory: Callable[[], Awaitable[UnitOfWork]]):
        self.uow_factory = uow_factory

    async def add(
        self,
        first_name: str,
        last_name: str,
        email: str,
        source: MailingListSource = MailingListSource.USER_INFO,
        keep_in_touch: bool = True,
    ) -> bool:
        """Add a subscriber.

        Returns:
            True if a new entry was created, False if the email is already listed

        Raises:
            RecordStoreError: Database write failed
        """
        email = email.strip()
        try:
            async with await self.uow_factory() as uow:
                if await uow.mailing_list.get_by_email(email) is not None:
                    logger.info("mailing_list.already_listed", email=email)
                    return False
                await uow.mailing_list.add(
                    MailingListEntry(
                        first_name=first_name,
                        last_name=last_name,
                        email=email,
                        source=source,
                        keep_in_touch=keep_in_touch,
                    )
                )
        except IntegrityError:
            # Concurrent insert of the same email lost the race on the unique index
            logger.info("mailing_list.already_listed", email=email)
            return False
        except SQLAlchemyError as e:
            raise RecordStoreError("Could not update the mailing list", detail=str(e)) from e

        logger.info("mailing_list.added", email=email, source=source.value)
        return True

    async def count(self) -> int:
        try:
            async with await self.uow_factory() as uow:
                return await uow.mailing_list.count()
        except SQLAlchemyError as e:
            raise RecordStoreError("Could not count the mailing list", detail=str(e)) from e
