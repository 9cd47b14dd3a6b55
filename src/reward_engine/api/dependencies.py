"""FastAPI dependency injection helpers.

Usage in a route::

    @router.get("/statistics")
    async def get_statistics(
        engine: Annotated[RewardEngine, Depends(get_engine)],
    ) -> dict:
        ...
"""

from __future__ import annotations

from fastapi import Request

from reward_engine.engine.client import RewardEngine  # noqa: TC001
from reward_engine.errors.definitions import ErrEngineNotReady


def get_engine(request: Request) -> RewardEngine:
    """Retrieve the engine from ``app.state``.

    The engine is stored on ``app.state.engine`` during lifespan startup.

    Raises:
        ErrEngineNotReady: If the engine has not been started.
    """
    engine: RewardEngine | None = getattr(request.app.state, "engine", None)
    if engine is None:
        raise ErrEngineNotReady
    return engine
