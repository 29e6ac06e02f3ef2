"""Default observability manager implementation."""

import logging
from datetime import UTC, datetime
from typing import Any

import structlog

from autosendr.domain.interfaces.observability_manager import (
    ObservabilityError,
    ObservabilityManager,
)

_SECRET_FIELDS = frozenset({"api_key", "apiKey", "key_material", "secret", "password"})
_SECRET_PREFIXES = ("gsk_", "sk-", "pk-", "xai-")


def sanitize_for_logging(data: Any) -> Any:
    """Sanitize data to remove sensitive information before logging.

    Redacts known secret fields and any string that looks like a raw
    provider key. Already-masked keys (containing '*') pass through so that
    operators can still tell keys apart.

    Args:
        data: Data structure to sanitize (dict, list, or primitive).

    Returns:
        Sanitized data structure.
    """
    if isinstance(data, dict):
        sanitized = {}
        for key, value in data.items():
            if key in _SECRET_FIELDS:
                sanitized[key] = "[REDACTED]"
            else:
                sanitized[key] = sanitize_for_logging(value)
        return sanitized
    elif isinstance(data, list):
        return [sanitize_for_logging(item) for item in data]
    elif isinstance(data, str):
        if data.startswith(_SECRET_PREFIXES) and len(data) > 20 and "*" not in data:
            return "[REDACTED]"
    return data


def configure_logging(log_level: str = "INFO", json_format: bool = True) -> None:
    """Configure structlog and the stdlib root logger it wraps."""
    processors: list[Any] = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(message)s"
        if json_format
        else "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


class DefaultObservabilityManager(ObservabilityManager):
    """Default implementation of ObservabilityManager using structlog.

    JSON output for production, console rendering for development.
    """

    def __init__(self, log_level: str = "INFO", json_format: bool = True) -> None:
        """Initialize DefaultObservabilityManager.

        Args:
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            json_format: If True, render JSON; otherwise human-readable output.
        """
        self._log_level = log_level
        self._json_format = json_format
        configure_logging(log_level, json_format)
        self._logger = structlog.get_logger("autosendr")

    async def emit_event(
        self,
        event_type: str,
        payload: dict[str, Any],
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Emit an event as a structured log line.

        Raises:
            ObservabilityError: If event emission fails.
        """
        try:
            event_data = dict(sanitize_for_logging(payload))
            if metadata:
                sanitized_metadata = sanitize_for_logging(metadata)
                if "timestamp" not in sanitized_metadata:
                    sanitized_metadata["timestamp"] = datetime.now(UTC).isoformat()
                event_data["metadata"] = sanitized_metadata

            self._logger.info(
                "Event emitted",
                event_type=event_type,
                **event_data,
            )
        except Exception as e:
            raise ObservabilityError(f"Failed to emit event: {e}") from e

    async def log(
        self,
        level: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Log a message with structured context.

        Raises:
            ObservabilityError: If logging fails.
        """
        try:
            sanitized_context = sanitize_for_logging(context) if context else None
            sanitized_message = sanitize_for_logging(message)

            log_method = getattr(self._logger, level.lower(), self._logger.info)
            if sanitized_context:
                log_method(sanitized_message, **sanitized_context)
            else:
                log_method(sanitized_message)
        except Exception as e:
            raise ObservabilityError(f"Failed to log message: {e}") from e
