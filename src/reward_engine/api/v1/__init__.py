"""V1 REST API routes.

Combines all sub-routers under the ``/api/v1`` prefix.
"""

from fastapi import APIRouter

from reward_engine.api.v1.cycles import router as cycles_router
from reward_engine.api.v1.distributions import router as distributions_router
from reward_engine.api.v1.epochs import router as epochs_router
from reward_engine.api.v1.payouts import router as payouts_router
from reward_engine.api.v1.statistics import router as statistics_router

v1_router = APIRouter(prefix="/api/v1")

v1_router.include_router(cycles_router)
v1_router.include_router(epochs_router)
v1_router.include_router(statistics_router)
v1_router.include_router(distributions_router)
v1_router.include_router(payouts_router)

__all__ = ["v1_router"]
