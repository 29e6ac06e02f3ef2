"""Startup script for the AutoSendr backend with graceful shutdown configuration."""

import uvicorn

from autosendr.infrastructure.config.settings import AppSettings


def main() -> None:
    """Start the API server."""
    settings = AppSettings()

    config = uvicorn.Config(
        "autosendr.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        timeout_graceful_shutdown=settings.shutdown_timeout_seconds,
        log_level=settings.log_level.lower(),
    )

    server = uvicorn.Server(config)
    server.run()


if __name__ == "__main__":
    main()
