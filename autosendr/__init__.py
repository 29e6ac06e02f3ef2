"""AutoSendr: recruiting outreach backend with rotated AI provider keys."""

__version__ = "0.1.0"
