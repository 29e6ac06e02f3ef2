"""ProviderAdapter abstract interface for AI completion providers.

The rotation components never talk to a provider. The email enhancement flow
does, through this interface, and only needs two things back: the generated
text, or a ProviderError carrying a structured FailureReason.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from autosendr.domain.models.provider_error import ProviderError


class ProviderAdapter(ABC):
    """Abstract interface for provider-specific implementations.

    Example Usage:
        ```python
        class GroqAdapter(ProviderAdapter):
            async def complete(self, prompt: str, api_key: str) -> str | None:
                # POST to the chat completions endpoint with api_key
                ...

            def map_error(self, provider_error: Exception) -> ProviderError:
                # 429 -> RateLimitExceeded, insufficient_quota -> QuotaExceeded
                ...
        ```
    """

    @abstractmethod
    async def complete(self, prompt: str, api_key: str) -> str | None:
        """Run a single-turn completion.

        Args:
            prompt: The user message to send.
            api_key: Provider key selected by the caller.

        Returns:
            The completion text, or None if the provider returned no content.

        Raises:
            ProviderError: Classified failure. Adapters never raise transport
                or SDK exceptions directly.
        """
        ...

    @abstractmethod
    def map_error(self, provider_error: Exception) -> ProviderError:
        """Map a transport or provider exception to a classified ProviderError."""
        ...
