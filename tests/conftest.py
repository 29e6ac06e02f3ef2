"""Pytest configuration and shared fixtures."""
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from dotenv import load_dotenv

from autosendr.domain.interfaces.observability_manager import ObservabilityManager

# Load .env file from project root before running tests
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


class MockObservabilityManager(ObservabilityManager):
    """Mock ObservabilityManager for testing."""

    def __init__(self) -> None:
        self.events: list[dict] = []
        self.logs: list[dict] = []
        self.emit_error: Exception | None = None

    async def emit_event(
        self,
        event_type: str,
        payload: dict,
        metadata: dict | None = None,
    ) -> None:
        if self.emit_error:
            raise self.emit_error
        self.events.append({
            "event_type": event_type,
            "payload": payload,
            "metadata": metadata or {},
        })

    async def log(
        self,
        level: str,
        message: str,
        context: dict | None = None,
    ) -> None:
        self.logs.append({
            "level": level,
            "message": message,
            "context": context or {},
        })

    def messages(self, level: str | None = None) -> list[str]:
        return [entry["message"] for entry in self.logs if level is None or entry["level"] == level]


class FakeClock:
    """Controllable clock returning aware UTC datetimes."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def observability() -> MockObservabilityManager:
    return MockObservabilityManager()


@pytest.fixture
def clock() -> FakeClock:
    # Mid-afternoon so short cooldowns never cross midnight
    return FakeClock(datetime(2024, 3, 14, 15, 0, 0, tzinfo=UTC))
