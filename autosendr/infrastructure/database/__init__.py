"""Relational persistence (SQLAlchemy async)."""

from autosendr.infrastructure.database.contact_repository import (
    ContactNotFoundError,
    ContactRepository,
    get_active_ai_rules,
)
from autosendr.infrastructure.database.engine import (
    Base,
    build_engine,
    build_session_factory,
    get_db_session,
    init_models,
)
from autosendr.infrastructure.database.models import AiRule, Contact, EmailSend

__all__ = [
    "AiRule",
    "Base",
    "Contact",
    "ContactNotFoundError",
    "ContactRepository",
    "EmailSend",
    "build_engine",
    "build_session_factory",
    "get_active_ai_rules",
    "get_db_session",
    "init_models",
]
