"""
Dependency injection setup for the AutoSendr API.

Long-lived components are built once in the application lifespan and kept on
app.state; these functions hand them to route handlers.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from autosendr.domain.components.email_enhancer import EmailEnhancer
from autosendr.domain.components.key_manager import KeyManager
from autosendr.infrastructure.database.contact_repository import ContactRepository
from autosendr.infrastructure.database.engine import get_db_session


def get_key_manager(request: Request) -> KeyManager:
    """Get the process-wide KeyManager."""
    return request.app.state.key_manager


def get_email_enhancer(request: Request) -> EmailEnhancer:
    """Get the process-wide EmailEnhancer."""
    return request.app.state.email_enhancer


def get_contact_repository(
    session: AsyncSession = Depends(get_db_session),
) -> ContactRepository:
    """Get a ContactRepository bound to the request session."""
    return ContactRepository(session)
