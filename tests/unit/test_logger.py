"""Tests for DefaultObservabilityManager and log sanitization."""

from unittest.mock import MagicMock

import pytest

from autosendr.domain.interfaces.observability_manager import ObservabilityError
from autosendr.infrastructure.observability.logger import (
    DefaultObservabilityManager,
    sanitize_for_logging,
)


class TestSanitizeForLogging:
    def test_redacts_secret_fields(self) -> None:
        data = {"api_key": "anything", "nested": {"password": "hunter2"}, "count": 3}
        assert sanitize_for_logging(data) == {
            "api_key": "[REDACTED]",
            "nested": {"password": "[REDACTED]"},
            "count": 3,
        }

    def test_redacts_raw_provider_keys_anywhere(self) -> None:
        raw = "gsk_" + "x" * 48
        assert sanitize_for_logging({"key": raw}) == {"key": "[REDACTED]"}
        assert sanitize_for_logging([raw]) == ["[REDACTED]"]

    def test_masked_keys_pass_through(self) -> None:
        masked = "gsk_" + "*" * 40 + "abcd"
        assert sanitize_for_logging({"key": masked}) == {"key": masked}

    def test_ordinary_strings_untouched(self) -> None:
        assert sanitize_for_logging("Email enhanced successfully") == "Email enhanced successfully"


class TestDefaultObservabilityManager:
    def setup_method(self) -> None:
        self.manager = DefaultObservabilityManager(log_level="DEBUG", json_format=False)
        self.manager._logger = MagicMock()

    @pytest.mark.asyncio
    async def test_emit_event_logs_sanitized_payload(self) -> None:
        raw = "gsk_" + "y" * 40
        await self.manager.emit_event("key_usage_recorded", {"key": raw, "success": True})

        self.manager._logger.info.assert_called_once_with(
            "Event emitted",
            event_type="key_usage_recorded",
            key="[REDACTED]",
            success=True,
        )

    @pytest.mark.asyncio
    async def test_emit_event_adds_metadata_timestamp(self) -> None:
        await self.manager.emit_event("key_fleet_exhausted", {}, metadata={"source": "test"})

        kwargs = self.manager._logger.info.call_args.kwargs
        assert kwargs["metadata"]["source"] == "test"
        assert "timestamp" in kwargs["metadata"]

    @pytest.mark.asyncio
    async def test_log_dispatches_by_level(self) -> None:
        await self.manager.log("WARNING", "Duplicate API key", {"key": "gsk_****abcd"})
        self.manager._logger.warning.assert_called_once_with(
            "Duplicate API key", key="gsk_****abcd"
        )

    @pytest.mark.asyncio
    async def test_log_failure_raises_observability_error(self) -> None:
        self.manager._logger.error.side_effect = RuntimeError("handler broken")
        with pytest.raises(ObservabilityError):
            await self.manager.log("ERROR", "boom")
