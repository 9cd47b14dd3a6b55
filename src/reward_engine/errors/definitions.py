"""Pre-built errors surfaced by the query API."""

from __future__ import annotations

from reward_engine.errors.engine_errors import RewardEngineError

# -- Validation ------------------------------------------------------------

ErrInvalidEpochId = RewardEngineError(
    "invalid epoch id, expected YYYY-MM-DD", status_code=400, code="invalid-epoch-id"
)
ErrInvalidPayoutStatus = RewardEngineError(
    "invalid payout status", status_code=400, code="invalid-payout-status"
)

# -- Not Found -------------------------------------------------------------

ErrEpochNotFound = RewardEngineError("epoch not found", status_code=404, code="epoch-not-found")
ErrNoDistribution = RewardEngineError(
    "no distribution recorded yet", status_code=404, code="no-distribution"
)

# -- Service ---------------------------------------------------------------

ErrEngineNotReady = RewardEngineError(
    "engine is not initialized", status_code=503, code="engine-not-ready"
)
