"""Result models for one orchestrator run."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

_ITEM_TYPES = {"cluster", "single_fact"}
_ITEM_STATUSES = {"updated", "skipped", "failed"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ErrorRecord(BaseModel):
    """Failure captured for one due item."""

    item_type: str
    item_id: str
    stage: str
    message: str
    exception_type: str = "FreshnessError"
    retryable: bool = False


class ItemOutcome(BaseModel):
    """Outcome for a single cluster or unclustered fact processed in a run."""

    item_type: str = Field(..., description="cluster|single_fact")
    item_id: str
    status: str = Field(..., description="updated|skipped|failed")
    name: Optional[str] = Field(default=None, description="Cluster name or fact subtype")
    facts_updated: int = Field(default=0, ge=0)
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    source: Optional[str] = None
    confidence: Optional[str] = None
    validation_status: Optional[str] = None
    reason: Optional[str] = None
    duration_ms: int = Field(default=0, ge=0)

    @field_validator("item_type")
    @classmethod
    def _validate_item_type(cls, value: str) -> str:
        if value not in _ITEM_TYPES:
            msg = f"item_type must be one of {sorted(_ITEM_TYPES)}"
            raise ValueError(msg)
        return value

    @field_validator("status")
    @classmethod
    def _validate_status(cls, value: str) -> str:
        if value not in _ITEM_STATUSES:
            msg = f"status must be one of {sorted(_ITEM_STATUSES)}"
            raise ValueError(msg)
        return value


class RunReport(BaseModel):
    """Aggregated counts and details for one orchestrator invocation."""

    success: bool = True
    message: str = ""
    processed: int = Field(default=0, ge=0)
    successful: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    skipped: int = Field(default=0, ge=0)
    clusters: int = Field(default=0, ge=0)
    single_facts: int = Field(default=0, ge=0)
    details: List[ItemOutcome] = Field(default_factory=list)
    errors: List[ErrorRecord] = Field(default_factory=list)
    maintenance: Dict[str, object] = Field(default_factory=dict)
    config_snapshot: Dict[str, object] = Field(default_factory=dict)
    start_time: datetime = Field(default_factory=_utcnow)
    end_time: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        """Percentage of processed facts that were updated; 100 when nothing ran."""

        if self.processed == 0:
            return 100.0
        return round(self.successful / self.processed * 100, 1)

    @property
    def duration_ms(self) -> int:
        if self.end_time is None:
            return 0
        return max(0, int((self.end_time - self.start_time).total_seconds() * 1000))

    def finish(self) -> None:
        self.end_time = _utcnow()

    def to_dict(self) -> Dict[str, object]:
        """Return a JSON-serialisable representation."""

        return {
            "success": self.success,
            "message": self.message,
            "timestamp": (self.end_time or _utcnow()).isoformat(),
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": self.duration_ms,
            "summary": {
                "processed": self.processed,
                "successful": self.successful,
                "failed": self.failed,
                "skipped": self.skipped,
                "success_rate": self.success_rate,
            },
            "breakdown": {
                "clusters": self.clusters,
                "single_facts": self.single_facts,
            },
            "details": [detail.model_dump() for detail in self.details],
            "errors": [error.model_dump() for error in self.errors],
            "maintenance": self.maintenance,
            "config": self.config_snapshot,
        }
