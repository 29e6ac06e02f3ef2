"""Provider adapters."""

from autosendr.infrastructure.adapters.groq_adapter import GroqAdapter

__all__ = ["GroqAdapter"]
