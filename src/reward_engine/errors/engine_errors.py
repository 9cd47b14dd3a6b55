"""RewardEngineError: base exception class for all reward engine errors."""

from __future__ import annotations


class RewardEngineError(Exception):
    """Base error for all reward engine operations.

    Attributes:
        message: Human-readable error description.
        status_code: Suggested HTTP status code.
        code: Machine-readable error code string.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 500,
        code: str = "reward-engine-error",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class PersistenceError(RewardEngineError):
    """A durable write to the state store failed.

    Never converted into a cycle outcome; the caller must not report success.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=500, code="persistence-error")


class LeaseLostError(RewardEngineError):
    """The scheduler lease passed to another process during a cycle run."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=409, code="lease-lost")
