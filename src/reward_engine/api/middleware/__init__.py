"""API middleware: CORS."""

from reward_engine.api.middleware.cors import setup_cors

__all__ = ["setup_cors"]
