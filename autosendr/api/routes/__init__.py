"""API routers."""

from autosendr.api.routes import contacts, email, keys

__all__ = ["contacts", "email", "keys"]
