"""Exception taxonomy for the fact freshness orchestrator."""

from __future__ import annotations

from typing import Optional


class FreshnessError(RuntimeError):
    """Base class for all orchestrator failures."""

    def __init__(self, message: str, *, stage: str = "general", retryable: bool = False) -> None:
        super().__init__(message)
        self.stage = stage
        self.retryable = retryable


class ExternalServiceError(FreshnessError):
    """Raised when an external service is unreachable or reports failure."""


class ParseFailure(FreshnessError):
    """Raised when an external service returns a malformed structured response."""

    def __init__(self, message: str, *, stage: str = "parse", raw: Optional[str] = None) -> None:
        super().__init__(message, stage=stage, retryable=False)
        self.raw = raw


class PersistenceError(FreshnessError):
    """Raised when the fact store rejects a write."""

    def __init__(self, message: str, *, stage: str = "persistence") -> None:
        super().__init__(message, stage=stage, retryable=True)


class NotFoundError(FreshnessError):
    """Raised when a referenced fact, cluster or article does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} not found: {identifier}", stage="lookup")
        self.kind = kind
        self.identifier = identifier


class DueWorkUnavailableError(FreshnessError):
    """Raised when due items cannot be enumerated; fatal for the whole run."""

    def __init__(self, message: str) -> None:
        super().__init__(message, stage="due_work", retryable=True)


class LeaseLost(FreshnessError):
    """Raised when another run already claimed a due item."""

    def __init__(self, fact_id: str) -> None:
        super().__init__(f"Fact {fact_id} was claimed by another run", stage="lease")
        self.fact_id = fact_id
