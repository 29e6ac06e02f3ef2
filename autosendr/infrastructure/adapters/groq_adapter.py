"""Groq provider adapter implementation."""

from __future__ import annotations

from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from autosendr.domain.interfaces.provider_adapter import ProviderAdapter
from autosendr.domain.models.api_key_record import FailureReason
from autosendr.domain.models.provider_error import ProviderError


class GroqAdapter(ProviderAdapter):
    """Groq chat completions adapter (OpenAI-compatible wire format).

    Sends one user message per call and classifies failures into the
    FailureReason values the usage recorder understands.

    Example:
        ```python
        adapter = GroqAdapter(model="llama3-8b-8192")
        text = await adapter.complete("Fix the grammar: ...", api_key)
        ```
    """

    BASE_URL = "https://api.groq.com/openai/v1"
    """Groq OpenAI-compatible API base URL."""

    MODEL = "llama3-8b-8192"

    TIMEOUT = 30.0
    """Request timeout in seconds."""

    QUOTA_CODES = frozenset({"insufficient_quota", "billing_hard_limit_reached", "billing_not_active"})
    """Provider error codes meaning the key has no capacity left today."""

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        temperature: float = 0.1,
        max_tokens: int = 500,
    ) -> None:
        """Initialize Groq adapter.

        Args:
            base_url: Optional base URL override (for testing).
            model: Chat model name.
            timeout: Optional timeout override.
            temperature: Sampling temperature; low for consistent rewrites.
            max_tokens: Completion token limit.
        """
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.model = model or self.MODEL
        self.timeout = timeout or self.TIMEOUT
        self.temperature = temperature
        self.max_tokens = max_tokens

    def build_request(self, prompt: str) -> dict[str, Any]:
        """Build the chat completions request body for a single prompt."""
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

    async def complete(self, prompt: str, api_key: str) -> str | None:
        """Run a single-turn completion with the given key.

        Returns:
            Message content of the first choice, or None when empty.

        Raises:
            ProviderError: If the request fails for any reason.
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=self.build_request(prompt),
                    headers={
                        "Authorization": f"Bearer {api_key}",
                        "Content-Type": "application/json",
                    },
                )
                response.raise_for_status()
                response_data = response.json()
        except Exception as e:
            raise self.map_error(e) from e

        return self.extract_content(response_data)

    @staticmethod
    def extract_content(response_data: Any) -> str | None:
        """Pull choices[0].message.content out of a response body."""
        if not isinstance(response_data, dict):
            return None
        choices = response_data.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return None
        message = choices[0].get("message") or {}
        content = message.get("content")
        if not isinstance(content, str) or not content.strip():
            return None
        return content

    def map_error(self, provider_error: Exception) -> ProviderError:
        """Map a Groq/httpx error to a classified ProviderError.

        429 or a rate_limit_exceeded code is a rate limit; quota and billing
        codes (or 402) mean the key is done for the day; everything else,
        including timeouts and network errors, is a generic error.
        """
        if isinstance(provider_error, httpx.HTTPStatusError):
            status_code = provider_error.response.status_code
            response = provider_error.response
            retry_after = self._extract_retry_after(response)
            error_details = self._extract_error_details(response)
            code = error_details.get("code") or error_details.get("type") or ""
            error_message = error_details.get("message") or response.text or ""

            if code in self.QUOTA_CODES or "billing" in code or status_code == 402:
                return ProviderError(
                    failure_reason=FailureReason.QuotaExceeded,
                    message=error_message or "Groq quota exceeded for this key",
                    provider_code=code or "insufficient_quota",
                    status_code=status_code,
                    retry_after=retry_after,
                    details=error_details,
                )
            if status_code == 429 or code == "rate_limit_exceeded":
                return ProviderError(
                    failure_reason=FailureReason.RateLimitExceeded,
                    message=error_message or "Groq rate limit exceeded",
                    provider_code=code or "rate_limit_exceeded",
                    status_code=status_code,
                    retry_after=retry_after,
                    details=error_details,
                )
            return ProviderError(
                failure_reason=FailureReason.GenericError,
                message=error_message or f"Groq API error ({status_code})",
                provider_code=code or f"http_error_{status_code}",
                status_code=status_code,
                details=error_details,
            )

        if isinstance(provider_error, httpx.TimeoutException):
            return ProviderError(
                failure_reason=FailureReason.GenericError,
                message=f"Request to Groq timed out after {self.timeout}s",
                provider_code="timeout",
            )

        if isinstance(provider_error, httpx.NetworkError):
            return ProviderError(
                failure_reason=FailureReason.GenericError,
                message=f"Network error connecting to Groq: {provider_error}",
                provider_code="network_error",
            )

        return ProviderError(
            failure_reason=FailureReason.GenericError,
            message=f"Unknown error from Groq: {provider_error}",
            provider_code="unknown",
            details={"original_error": str(provider_error)},
        )

    def _extract_retry_after(self, response: httpx.Response) -> int | None:
        """Read Retry-After as seconds; accepts an HTTP date as well."""
        retry_after_header = response.headers.get("retry-after")
        if not retry_after_header:
            return None

        try:
            seconds = int(float(retry_after_header))
            return seconds if seconds > 0 else None
        except ValueError:
            try:
                retry_date = parsedate_to_datetime(retry_after_header)
            except (TypeError, ValueError):
                return None
            if retry_date.tzinfo is None:
                retry_date = retry_date.replace(tzinfo=UTC)
            delta = (retry_date - datetime.now(UTC)).total_seconds()
            return int(delta) if delta > 0 else None

    def _extract_error_details(self, response: httpx.Response) -> dict[str, Any]:
        details: dict[str, Any] = {}

        try:
            error_data = response.json()
        except ValueError:
            if response.text:
                details["message"] = response.text
            return details

        if isinstance(error_data, dict):
            # {"error": {"message": "...", "type": "...", "code": "..."}}
            error_obj = error_data.get("error")
            source = error_obj if isinstance(error_obj, dict) else error_data
            details["message"] = source.get("message")
            details["type"] = source.get("type")
            details["code"] = source.get("code")
        return details
