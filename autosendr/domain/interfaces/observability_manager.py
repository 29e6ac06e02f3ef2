"""ObservabilityManager interface used by the key rotation and enhancement flow.

Components report two kinds of output through it: discrete events such as
`key_usage_recorded`, `key_exhausted_for_day` and `key_fleet_exhausted`,
and log lines. A failing sink never changes a quota decision: callers
catch errors around these calls.
"""

from abc import ABC, abstractmethod
from typing import Any


class ObservabilityError(Exception):
    """Raised when an event or log line cannot be written."""


class ObservabilityManager(ABC):
    """Sink for key rotation events and structured logs.

    Context passed here must already be safe to print: keys go through
    mask_key() first.
    """

    @abstractmethod
    async def emit_event(
        self,
        event_type: str,
        payload: dict[str, Any],
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Emit a named event with a JSON-serializable payload.

        Raises:
            ObservabilityError: If the event cannot be emitted.
        """
        ...

    @abstractmethod
    async def log(
        self,
        level: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Write a log line at `level` (DEBUG through CRITICAL).

        Raises:
            ObservabilityError: If the line cannot be written.
        """
        ...
