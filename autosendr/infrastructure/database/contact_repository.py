"""Contact persistence: listing, merge-on-email upload, and cascade delete."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import structlog
from pydantic import ValidationError
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from autosendr.domain.models.contact import ContactPayload
from autosendr.infrastructure.database.models import AiRule, Contact, EmailSend

logger = structlog.get_logger(__name__)

_MERGED_FIELDS = ("name", "company_name", "role", "recruiter_name", "additional_info")


class ContactNotFoundError(Exception):
    """Raised when a contact id does not exist."""

    def __init__(self, contact_id: int) -> None:
        self.contact_id = contact_id
        super().__init__(f"Contact not found: {contact_id}")


class ContactRepository:
    """Queries over the contacts and email_sends tables.

    One repository per request session. Each write commits on its own; the
    upload path uses a savepoint per row so one bad row does not roll back
    the others.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_contacts(self) -> list[Contact]:
        """All contacts, newest first."""
        result = await self._session.execute(
            select(Contact).order_by(Contact.created_at.desc(), Contact.id.desc())
        )
        return list(result.scalars().all())

    async def upsert_contacts(
        self,
        rows: Iterable[ContactPayload | dict[str, Any]],
    ) -> list[Contact]:
        """Insert new contacts or merge into existing ones by email.

        Incoming non-null fields overwrite stored values; null fields keep
        what is already there. Rows that fail validation or the write itself
        are logged and skipped.

        Returns:
            The contacts that were written, in input order.
        """
        processed: list[Contact] = []
        for row in rows:
            try:
                payload = (
                    row if isinstance(row, ContactPayload) else ContactPayload.model_validate(row)
                )
            except ValidationError as e:
                email = row.get("email") if isinstance(row, dict) else None
                logger.warning(
                    "contact_rejected",
                    email=email,
                    errors=e.error_count(),
                )
                continue

            try:
                async with self._session.begin_nested():
                    contact = await self._merge(payload)
                processed.append(contact)
            except SQLAlchemyError as e:
                logger.error("contact_upsert_failed", email=payload.email, error=str(e))

        await self._session.commit()
        return processed

    async def _merge(self, payload: ContactPayload) -> Contact:
        result = await self._session.execute(
            select(Contact).where(Contact.email == payload.email)
        )
        contact = result.scalar_one_or_none()

        if contact is None:
            contact = Contact(
                email=payload.email,
                name=payload.name,
                company_name=payload.company_name,
                role=payload.role,
                recruiter_name=payload.recruiter_name,
                additional_info=payload.additional_info or {},
            )
            self._session.add(contact)
        else:
            for field in _MERGED_FIELDS:
                value = getattr(payload, field)
                if value is not None:
                    setattr(contact, field, value)

        await self._session.flush()
        return contact

    async def delete_contact(self, contact_id: int) -> int:
        """Delete a contact and its email_sends rows.

        Returns:
            Number of email_sends rows deleted.

        Raises:
            ContactNotFoundError: If the contact does not exist.
        """
        contact = await self._session.get(Contact, contact_id)
        if contact is None:
            raise ContactNotFoundError(contact_id)

        send_count = await self._session.scalar(
            select(func.count()).select_from(EmailSend).where(EmailSend.contact_id == contact_id)
        )
        send_count = int(send_count or 0)

        if send_count > 0:
            await self._session.execute(delete(EmailSend).where(EmailSend.contact_id == contact_id))
            logger.info(
                "email_sends_deleted",
                contact_id=contact_id,
                count=send_count,
            )

        await self._session.delete(contact)
        await self._session.commit()
        return send_count


async def get_active_ai_rules(session: AsyncSession) -> str | None:
    """Rules text of the newest active ai_rules row, or None if there is none."""
    result = await session.execute(
        select(AiRule.rules_text)
        .where(AiRule.is_active.is_(True))
        .order_by(AiRule.created_at.desc(), AiRule.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()
