"""
API endpoints for contacts.
"""
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from autosendr.api.dependencies import get_contact_repository
from autosendr.domain.models.contact import ContactOut
from autosendr.infrastructure.database.contact_repository import (
    ContactNotFoundError,
    ContactRepository,
)

logger = structlog.get_logger(__name__)

router = APIRouter()


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


@router.get("/contacts", response_model=None)
async def list_contacts(
    repository: Annotated[ContactRepository, Depends(get_contact_repository)],
) -> dict[str, Any] | JSONResponse:
    """
    List all contacts, newest first.
    """
    try:
        contacts = await repository.list_contacts()
    except SQLAlchemyError as e:
        logger.error("contacts_fetch_failed", error=str(e))
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to fetch contacts")
    return {
        "contacts": [ContactOut.model_validate(c).model_dump(mode="json") for c in contacts]
    }


@router.post("/contacts", response_model=None)
async def upload_contacts(
    request: Request,
    repository: Annotated[ContactRepository, Depends(get_contact_repository)],
) -> dict[str, Any] | JSONResponse:
    """
    Insert or merge uploaded contacts by email.
    """
    try:
        payload = await request.json()
    except ValueError:
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid data format")
    rows = payload.get("contacts") if isinstance(payload, dict) else None
    if not isinstance(rows, list):
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid data format")

    try:
        contacts = await repository.upsert_contacts(rows)
    except SQLAlchemyError as e:
        logger.error("contacts_upload_failed", error=str(e))
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to process contacts")

    return {
        "message": f"Successfully processed {len(contacts)} contacts",
        "contacts": [ContactOut.model_validate(c).model_dump(mode="json") for c in contacts],
    }


@router.delete("/contacts", response_model=None)
async def delete_contact(
    repository: Annotated[ContactRepository, Depends(get_contact_repository)],
    contact_id: Annotated[str | None, Query(alias="id")] = None,
) -> dict[str, Any] | JSONResponse:
    """
    Delete a contact and its email send records.
    """
    if not contact_id:
        return _error(status.HTTP_400_BAD_REQUEST, "Contact ID required")
    try:
        parsed_id = int(contact_id)
    except ValueError:
        return _error(status.HTTP_400_BAD_REQUEST, "Contact ID must be an integer")

    try:
        sends_deleted = await repository.delete_contact(parsed_id)
    except ContactNotFoundError:
        return _error(status.HTTP_404_NOT_FOUND, "Contact not found")
    except IntegrityError as e:
        logger.error("contact_delete_conflict", contact_id=parsed_id, error=str(e))
        return _error(
            status.HTTP_409_CONFLICT,
            "Cannot delete contact because it has associated email records. "
            "Please contact support.",
            code="FOREIGN_KEY_CONSTRAINT",
        )
    except SQLAlchemyError as e:
        logger.error("contact_delete_failed", contact_id=parsed_id, error=str(e))
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to delete contact")

    return {
        "message": "Contact deleted successfully",
        "emailSendsDeleted": sends_deleted,
    }
