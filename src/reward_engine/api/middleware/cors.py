"""Cross-origin access for dashboards reading the query API."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi.middleware.cors import CORSMiddleware

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fastapi import FastAPI

# The API never mutates state, so preflights for anything else are refused
READ_METHODS = ["GET", "OPTIONS"]


def setup_cors(app: FastAPI, origins: Sequence[str] = ("*",)) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(origins),
        allow_credentials=False,
        allow_methods=READ_METHODS,
        allow_headers=["Accept", "Content-Type"],
        max_age=3600,
    )
