"""FastAPI application factory for the read-only query API.

The lifespan owns the engine: it starts the datastore, ledger clients and,
when a signing factory is available, the cycle scheduler; shutdown cancels
any in-flight cycle, which then stays PENDING.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from reward_engine import __version__
from reward_engine.api.middleware.cors import setup_cors
from reward_engine.api.v1 import v1_router
from reward_engine.config.settings import AppConfig
from reward_engine.engine.client import RewardEngine
from reward_engine.errors.engine_errors import RewardEngineError
from reward_engine.metrics.collector import EngineMetrics
from reward_engine.metrics.middleware import PrometheusMiddleware

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from reward_engine.ledger.interfaces import TransactionFactory

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    engine = RewardEngine(
        app.state.config,
        factory=app.state.factory,
        metrics=getattr(app.state, "metrics", None),
    )
    try:
        await engine.initialize()
        app.state.engine = engine
        logger.info("Reward engine started (version %s)", __version__)
        yield
    finally:
        app.state.engine = None
        await engine.close()
        logger.info("Reward engine shut down")


async def _render_engine_error(_request: Request, exc: RewardEngineError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": exc.code, "message": exc.message},
    )


def _add_base_routes(app: FastAPI) -> None:
    @app.get("/health", tags=["base"])
    async def health() -> JSONResponse:
        """Liveness plus component status; 503 until the datastore answers."""
        engine: RewardEngine | None = getattr(app.state, "engine", None)
        if engine is None:
            return JSONResponse({"status": "starting"}, status_code=503)
        components = await engine.health_check()
        if components.get("datastore") == "ok":
            return JSONResponse({"status": "ok", "components": components})
        return JSONResponse({"status": "degraded", "components": components}, status_code=503)

    @app.get("/metrics", tags=["base"], include_in_schema=False)
    async def metrics() -> Response:
        engine_metrics: EngineMetrics | None = getattr(app.state, "metrics", None)
        body = generate_latest(engine_metrics.registry) if engine_metrics else generate_latest()
        return Response(content=body, media_type=CONTENT_TYPE_LATEST)


def create_app(
    *,
    config: AppConfig | None = None,
    factory: TransactionFactory | None = None,
) -> FastAPI:
    """Build the query API.

    Args:
        config: Application settings; read from the environment when omitted.
        factory: Signing transaction factory handed to the engine. Without
            one the engine serves queries but never schedules cycles.
    """
    config = config or AppConfig()

    app = FastAPI(
        title="reward-engine",
        version=__version__,
        description="Tax harvest, swap and distribution engine",
        lifespan=_lifespan,
    )
    app.state.config = config
    app.state.factory = factory

    setup_cors(app, config.server.cors_origins)
    if config.metrics.enabled:
        app.state.metrics = EngineMetrics()
        app.add_middleware(PrometheusMiddleware, registry=app.state.metrics.registry)

    app.add_exception_handler(RewardEngineError, _render_engine_error)  # type: ignore[arg-type]
    _add_base_routes(app)
    app.include_router(v1_router)
    return app
