"""Application entry point for the reward engine server."""

from __future__ import annotations

import logging
import os

import uvicorn

from reward_engine.config.settings import AppConfig

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(config: AppConfig) -> None:
    """Root logger at DEBUG when ``debug`` is set, INFO otherwise."""
    logging.basicConfig(
        level=logging.DEBUG if config.debug else logging.INFO,
        format=_LOG_FORMAT,
    )


def main() -> None:
    """Start the reward engine server."""
    config = AppConfig()
    configure_logging(config)
    reload = os.getenv("REWARDENGINE_RELOAD", "false").lower() in ("1", "true", "yes")
    uvicorn.run(
        "reward_engine.api.app:create_app",
        factory=True,
        host=config.server.host,
        port=config.server.port,
        reload=reload,
        log_level="debug" if config.debug else "info",
    )


if __name__ == "__main__":
    main()
