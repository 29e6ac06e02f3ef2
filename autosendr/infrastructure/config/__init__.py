"""Configuration infrastructure module."""

from autosendr.infrastructure.config.file_loader import (
    ConfigurationError,
    ConfigurationFileLoader,
)
from autosendr.infrastructure.config.settings import AppSettings

__all__ = [
    "AppSettings",
    "ConfigurationFileLoader",
    "ConfigurationError",
]
